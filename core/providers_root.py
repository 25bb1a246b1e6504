from __future__ import annotations

from core.logging_setup import setup_logging
from core.settings import PropertySettings, load_storage_settings
from helper.service import S3Helper
from providers.factory import build_providers


def build_helper(props: PropertySettings) -> S3Helper:
    """
    Composition root.

    Configures logging and builds the storage client from settings the
    caller has already loaded; the returned helper is then passed to
    whatever needs it instead of being looked up globally.
    """
    setup_logging(props)
    providers = build_providers(load_storage_settings(props))
    return S3Helper(providers.storage, providers.settings)

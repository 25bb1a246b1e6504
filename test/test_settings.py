import threading

import pytest

from core import settings as settings_mod
from core.errors import ConfigError
from core.settings import (
    PropertySettings,
    get_properties,
    get_settings,
    load_storage_settings,
    reset_settings,
)


def test_properties_file_is_read(properties_file):
    path = properties_file("# s3 helper\naws.region=eu-west-1\nupload.file-type = report\n")
    props = PropertySettings.load(path)
    assert props.get("aws.region") == "eu-west-1"
    assert props.get("upload.file-type") == "report"


def test_missing_key_is_a_configuration_error(properties_file):
    props = PropertySettings.load(properties_file("aws.region=eu-west-1\n"))
    with pytest.raises(ConfigError):
        props.get("aws.s3.endpoint")
    assert props.get("aws.s3.endpoint", "") == ""


def test_missing_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigError):
        PropertySettings.load(str(tmp_path / "nope.properties"))


def test_env_wins_over_file(properties_file, monkeypatch):
    props = PropertySettings.load(properties_file("aws.region=eu-west-1\naws.s3.waiter.max-attempts=3\n"))
    monkeypatch.setenv("AWS_REGION", "us-west-2")
    monkeypatch.setenv("AWS_S3_WAITER_MAX_ATTEMPTS", "7")
    assert props.get("aws.region") == "us-west-2"
    assert props.get_int("aws.s3.waiter.max-attempts", 20) == 7


def test_bad_integer_is_rejected(properties_file):
    props = PropertySettings.load(properties_file("aws.region=eu-west-1\naws.s3.presign.ttl=soon\n"))
    with pytest.raises(ConfigError):
        load_storage_settings(props)


def test_storage_settings_defaults(properties_file):
    s = load_storage_settings(PropertySettings.load(properties_file("aws.region=eu-west-1\n")))
    assert s.provider == "s3"
    assert s.region == "eu-west-1"
    assert s.endpoint_url is None
    assert s.upload_file_type == "i2c Chained File"
    assert s.wait_timeout_seconds == 5 * 20


def test_region_is_required_for_s3(properties_file):
    props = PropertySettings.load(properties_file("storage.provider=s3\n"))
    with pytest.raises(ConfigError):
        load_storage_settings(props)


def test_region_optional_for_local(properties_file, tmp_path):
    props = PropertySettings.load(properties_file(f"storage.provider=files\nstorage.local.dir={tmp_path}\n"))
    s = load_storage_settings(props)
    assert s.provider == "local"
    assert s.region == ""


def test_unknown_provider_is_rejected(properties_file):
    props = PropertySettings.load(properties_file("storage.provider=ftp\naws.region=eu-west-1\n"))
    with pytest.raises(ConfigError):
        load_storage_settings(props)


def test_properties_path_from_env(properties_file, monkeypatch):
    monkeypatch.setenv("S3HELPER_PROPERTIES", properties_file("aws.region=ap-south-1\n"))
    assert get_settings().region == "ap-south-1"
    assert get_settings() is get_settings()

    reset_settings()
    monkeypatch.setenv("AWS_REGION", "sa-east-1")
    assert get_settings().region == "sa-east-1"


def test_properties_built_once_under_concurrent_first_use(properties_file, monkeypatch):
    monkeypatch.setenv("S3HELPER_PROPERTIES", properties_file("aws.region=eu-west-1\n"))

    loads = []
    real_load = PropertySettings.load.__func__

    def counting_load(cls, path=None):
        loads.append(path)
        return real_load(cls, path)

    monkeypatch.setattr(settings_mod.PropertySettings, "load", classmethod(counting_load))

    barrier = threading.Barrier(8)
    seen = []

    def worker():
        barrier.wait()
        seen.append(get_properties())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(loads) == 1
    assert all(p is seen[0] for p in seen)

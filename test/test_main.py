import main
from core.settings import PropertySettings


def test_run_lists_buckets_and_downloads(properties_file, tmp_path, capsys):
    store = tmp_path / "store"
    (store / "nabo-user-images" / "group-images").mkdir(parents=True)
    (store / "nabo-user-images" / "group-images" / "Hello.pdf").write_bytes(b"pdf")
    out = tmp_path / "out"
    out.mkdir()

    path = properties_file(
        "storage.provider=local\n"
        f"storage.local.dir={store}\n"
        "demo.bucket=nabo-user-images\n"
        "demo.prefix=group-images/\n"
        "demo.file=Hello.pdf\n"
        f"demo.download-dir={out}\n"
    )

    assert main.run(path) == 0

    printed = capsys.readouterr().out.splitlines()
    assert printed[0] == "nabo-user-images"
    assert printed[1].endswith("Hello.pdf")
    assert printed[2].endswith("/nabo-user-images/group-images/Hello.pdf")
    assert (out / "Hello.pdf").read_bytes() == b"pdf"


def test_run_reports_configuration_error(tmp_path, capsys):
    assert main.run(str(tmp_path / "missing.properties")) == 1
    assert "configuration error" in capsys.readouterr().err


def test_run_reads_settings_file_once(properties_file, tmp_path, monkeypatch):
    (tmp_path / "store").mkdir()
    path = properties_file(f"storage.provider=local\nstorage.local.dir={tmp_path / 'store'}\n")

    loads = []
    real_load = PropertySettings.load.__func__

    def counting_load(cls, path=None):
        loads.append(path)
        return real_load(cls, path)

    monkeypatch.setattr(PropertySettings, "load", classmethod(counting_load))

    assert main.run(path) == 0
    assert loads == [path]

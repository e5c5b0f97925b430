import pytest

from vat_review.config import load_app_config


def _write(tmp_path, text: str):
    path = tmp_path / "vat_review_config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_no_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_app_config()

    assert config.database.engine == "sqlite"
    assert config.database.path == (tmp_path / "data/db/vat_review.sqlite").resolve()
    assert config.user.owner_id is None
    assert config.import_options.progress_every == 100
    assert config.import_options.yield_every == 1000
    assert config.persistence.save_batch_size == 100
    assert config.persistence.replace_batch_size == 1000
    assert config.reports.currency_symbol == "R"
    assert config.reports.top_n == 100
    assert config.reports.page_size == 50
    assert config.log_level == "INFO"


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.toml"))


def test_full_config_file(tmp_path):
    path = _write(
        tmp_path,
        """
[database]
engine = "sqlite"
path = "db/review.sqlite"

[user]
owner_id = "acc-1"
display_name = "Jane Doe"

[persistence]
save_batch_size = 10

[reports]
currency_symbol = "$"
output_dir = "out"
page_size = 250

[logging]
level = "debug"
""",
    )

    config = load_app_config(str(path))

    assert config.database.path == (tmp_path / "db/review.sqlite").resolve()
    assert config.user.owner_id == "acc-1"
    assert config.user.display_name == "Jane Doe"
    assert config.persistence.save_batch_size == 10
    assert config.persistence.replace_batch_size == 1000
    assert config.reports.currency_symbol == "$"
    assert config.reports.output_dir == (tmp_path / "out").resolve()
    assert config.reports.page_size == 250
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    "text, message",
    [
        ('[database]\nengine = "postgres"\n', "Unsupported database engine"),
        ("[reports]\npage_size = 20\n", "page_size"),
        ('[import]\nyield_every = "often"\n', "import.yield_every"),
        ("[persistence]\nsave_batch_size = 0\n", "positive"),
        ('reports = "flat"\n', r"\[reports\]"),
        ("[database\n", "Failed to parse"),
    ],
)
def test_invalid_values_are_rejected(tmp_path, text, message):
    path = _write(tmp_path, text)

    with pytest.raises(ValueError, match=message):
        load_app_config(str(path))

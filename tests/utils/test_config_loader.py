import pytest
from unittest.mock import MagicMock

from utils.config_loader import (
    DEFAULT_CONFIG,
    apply_env_overrides,
    find_config_dir,
    load_config,
)
from utils.errors import ConfigurationError


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "configs"
    directory.mkdir()
    return directory


def test_defaults_without_config_files(config_dir):
    logger = MagicMock()

    config = load_config("development", config_dir=str(config_dir), environ={}, logger=logger)

    assert config["database"] == DEFAULT_CONFIG["database"]
    assert config["environment"] == "development"
    logger.warning.assert_called_once()


def test_environment_file_takes_precedence(config_dir):
    (config_dir / "markov.yaml").write_text("tokenizer:\n  backend: spacy\n")
    (config_dir / "markov_production.yaml").write_text(
        "database:\n  backend: postgresql\n  postgresql:\n    host: db.internal\n")

    config = load_config("production", config_dir=str(config_dir), environ={})

    assert config["database"]["backend"] == "postgresql"
    assert config["database"]["postgresql"]["host"] == "db.internal"
    # Untouched keys keep their defaults
    assert config["database"]["postgresql"]["port"] == 5432
    assert config["tokenizer"]["backend"] == "nltk"


def test_falls_back_to_default_file(config_dir):
    (config_dir / "markov.yaml").write_text("generation:\n  default_max_words: 80\n")

    config = load_config("test", config_dir=str(config_dir), environ={})

    assert config["generation"]["default_max_words"] == 80
    assert config["generation"]["min_seeded_length"] == 10


def test_explicit_config_path(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("messages:\n  insufficient_data: Train me first.\n")

    config = load_config(config_path=str(path), environ={})

    assert config["messages"] == {"insufficient_data": "Train me first."}


def test_missing_explicit_config_path(tmp_path):
    with pytest.raises(ConfigurationError, match="Config file not found"):
        load_config(config_path=str(tmp_path / "nope.yaml"), environ={})


def test_invalid_yaml(config_dir):
    (config_dir / "markov.yaml").write_text("database: [unclosed\n")

    with pytest.raises(ConfigurationError):
        load_config(config_dir=str(config_dir), environ={})


def test_non_mapping_yaml(config_dir):
    (config_dir / "markov.yaml").write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        load_config(config_dir=str(config_dir), environ={})


def test_env_overrides(config_dir):
    environ = {
        "MARKOV_DB_BACKEND": "postgresql",
        "MARKOV_PG_PASSWORD": "s3cret",
        "MARKOV_PG_PORT": "6543",
        "MARKOV_TOKENIZER": "whitespace",
    }

    config = load_config(config_dir=str(config_dir), environ=environ)

    assert config["database"]["backend"] == "postgresql"
    assert config["database"]["postgresql"]["password"] == "s3cret"
    assert config["database"]["postgresql"]["port"] == 6543
    assert config["tokenizer"]["backend"] == "whitespace"


def test_invalid_env_override_value():
    with pytest.raises(ConfigurationError, match="MARKOV_PG_PORT"):
        apply_env_overrides({"database": {"postgresql": {}}}, {"MARKOV_PG_PORT": "fifty"})


def test_unsupported_backend(config_dir):
    (config_dir / "markov.yaml").write_text("database:\n  backend: mongodb\n")

    with pytest.raises(ConfigurationError, match="Unsupported database backend"):
        load_config(config_dir=str(config_dir), environ={})


def test_unsupported_tokenizer(config_dir):
    with pytest.raises(ConfigurationError, match="Unsupported tokenizer backend"):
        load_config(config_dir=str(config_dir), environ={"MARKOV_TOKENIZER": "bpe"})


def test_defaults_are_not_mutated(config_dir):
    load_config(config_dir=str(config_dir), environ={"MARKOV_PG_HOST": "elsewhere"})

    assert DEFAULT_CONFIG["database"]["postgresql"]["host"] == "localhost"


def test_find_config_dir_walks_upwards(tmp_path):
    (tmp_path / "configs").mkdir()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config_dir(str(nested)) == str(tmp_path / "configs")


def test_project_configs_are_found():
    config = load_config("test", environ={})

    assert config["database"]["sqlite"]["path"] == ":memory:"
    assert config["tokenizer"]["backend"] == "whitespace"

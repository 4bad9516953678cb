from flashstudy.config import Settings, load_settings


def test_defaults_without_environment():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.data_dir is None
    assert settings.mutation_timeout == 15.0
    assert not settings.scale_interval_by_ease


def test_environment_overrides():
    settings = load_settings({
        "FLASHSTUDY_DATA_DIR": "/var/lib/flashstudy",
        "FLASHSTUDY_PORT": "9000",
        "FLASHSTUDY_MUTATION_TIMEOUT": "2.5",
        "FLASHSTUDY_SCALE_INTERVAL_BY_EASE": "yes",
        "FLASHSTUDY_CORS_ORIGINS": "http://a.test, http://b.test,",
        "FLASHSTUDY_LOG_LEVEL": "debug",
    })

    assert settings.data_dir == "/var/lib/flashstudy"
    assert settings.port == 9000
    assert settings.mutation_timeout == 2.5
    assert settings.scale_interval_by_ease
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.log_level == "DEBUG"


def test_false_flag():
    assert not load_settings({"FLASHSTUDY_SCALE_INTERVAL_BY_EASE": "off"}).scale_interval_by_ease

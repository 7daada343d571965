"""Basic smoke tests for the package scaffolding."""

def test_imports():
    import api.routes  # noqa: F401
    import services.sessions  # noqa: F401
    from config.settings import settings

    assert settings.DB_PATH.endswith(".db")

from fastapi import Request

from core.settings import Settings

# Settings singleton
_settings = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure startup() was called."
    return _settings


def init_settings():
    """Initialize settings singleton."""
    global _settings
    _settings = Settings()


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None


# The confirmation engine objects are built once in the app lifespan and kept
# on app.state, so each process owns exactly one monitoring registry.
def get_store(request: Request):
    return request.app.state.store


def get_monitor(request: Request):
    return request.app.state.monitor


def get_mailer(request: Request):
    return request.app.state.mailer

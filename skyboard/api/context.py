"""Access to the running application's components from request handlers."""

from flask import current_app

EXTENSION_KEY = 'skyboard'


def get_components():
    """The Components instance registered by create_app()."""
    return current_app.extensions[EXTENSION_KEY]

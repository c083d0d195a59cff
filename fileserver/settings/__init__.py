"""Django settings for the fileserver project.

Settings are split into components under ``components/``.
Values come from environment variables or ``config/.env`` via decouple.
"""

from fileserver.settings.components.common import *  # noqa: F403
from fileserver.settings.components.files import *  # noqa: F403

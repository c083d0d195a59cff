"""Shared helpers for settings components."""

from pathlib import Path
from typing import Final

from decouple import AutoConfig

# Project root: fileserver/settings/components -> repository root
BASE_DIR: Final = Path(__file__).parent.parent.parent.parent

# Reads environment first, then config/.env if present
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))

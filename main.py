from __future__ import annotations

from supportchat.app.api.app import create_app
from supportchat.core.config import load_dotenv_file

load_dotenv_file()

app = create_app()

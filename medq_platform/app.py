"""MedQ pipeline service entry point.

`flask --app app run` serves the API; `flask --app app pipeline ...` runs the
maintenance commands (stuck-section reclaim, manual retry). The config class is
picked from FLASK_CONFIG (dev / prod / test).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent
if os.getenv("FLASK_SKIP_DOTENV") not in {"1", "true", "True"}:
    load_dotenv(PROJECT_ROOT / ".env")

from medq_app import create_app  # noqa: E402  (.env must be loaded first)

app = create_app()

if not app.config.get("OPENAI_API_KEY"):
    logging.getLogger("medq").warning("AI gateway key is not set; AI stages will fail until OPENAI_API_KEY is configured")


if __name__ == "__main__":  # pragma: no cover
    app.run(
        debug=app.config.get("DEBUG", False),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5080")),
        threaded=True,
    )

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root so gunicorn workers find it regardless of cwd
base_dir = Path(__file__).resolve().parent
env_path = base_dir / ".env"
if env_path.exists():
    load_dotenv(env_path, override=True)
else:
    load_dotenv(override=True)

from app import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="127.0.0.1", port=int(os.getenv("PORT", "5000")), debug=True)

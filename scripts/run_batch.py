import asyncio
import os
import sys

# --- ensure package imports work when launched directly ---
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from promoattr.config import get_settings
from promoattr.services.batch import run_batch
from promoattr.services.checkpoint import Checkpoint
from promoattr.services.materialize import materialize

# One product URL per line; path from argv or data/urls.txt
settings = get_settings()
urls_path = sys.argv[1] if len(sys.argv) > 1 else os.path.join(str(settings.data_dir), "urls.txt")

with open(urls_path, "r", encoding="utf-8") as f:
    urls = [line.strip() for line in f if line.strip()]

stats = asyncio.run(run_batch(urls, settings))
print(f"Batch stats: {stats}")

df = materialize(Checkpoint(settings.data_dir).visited(), settings.out_dir)
print(f"Positive finds: {0 if df is None else len(df)}")

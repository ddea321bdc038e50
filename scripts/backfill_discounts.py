import asyncio
import os
import sys

# --- ensure package imports work when launched directly ---
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from promoattr.config import get_settings
from promoattr.services.batch import backfill_checkpoint
from promoattr.services.checkpoint import Checkpoint
from promoattr.services.materialize import materialize

# Revisit pages whose code was found without a discount; reads data/visited.jsonl,
# writes data/visited_with_discounts.jsonl, then re-exports the positives from it.
settings = get_settings()

stats = asyncio.run(backfill_checkpoint(settings))
print(f"Backfill stats: {stats}")

df = materialize(Checkpoint(settings.data_dir).backfilled(), settings.out_dir)
print(f"Positive finds: {0 if df is None else len(df)}")

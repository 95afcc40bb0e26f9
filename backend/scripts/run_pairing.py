"""
LabelPair — Batch Pairing Script
Runs the pairing pipeline over a JSON file of vision records and writes
the camelCase result.

    python scripts/run_pairing.py records.json [--out result.json]

The OpenAI client is used when OPENAI_API_KEY is set; the HTTP embedding
client when EMBEDDING_API_URL is set. Without either, the heuristic
stages still run and unresolved fronts fall through to singletons.
"""

import argparse
import json
import sys
from pathlib import Path

# ─── Paths ───────────────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).parent
BACKEND_DIR = SCRIPT_DIR.parent
sys.path.insert(0, str(BACKEND_DIR))

from labelpair.config import get_settings  # noqa: E402
from labelpair.core.errors import PairingError  # noqa: E402
from labelpair.core.pipeline import run_pairing  # noqa: E402
from labelpair.modules.arbitration import OpenAIChatClient  # noqa: E402
from labelpair.modules.similarity import HTTPEmbeddingClient  # noqa: E402
from labelpair.utils.logger import configure_logging  # noqa: E402


def load_records(path: Path) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    # Accept a bare list or {"images": [...]}
    if isinstance(data, dict):
        data = data.get("images") or data.get("records") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of vision records")
    return data


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pair front/back product images.")
    parser.add_argument("records", type=Path, help="JSON file of vision records")
    parser.add_argument("--out", type=Path, default=None, help="write result JSON here")
    parser.add_argument("--run-id", default=None, help="audit id for the evidence log")
    parser.add_argument("--no-llm", action="store_true", help="skip LLM arbitration stages")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    print("\n🏷  LabelPair — Batch Pairing\n" + "─" * 40, file=sys.stderr)

    records = load_records(args.records)
    print(f"Records: {len(records)} from {args.records}", file=sys.stderr)

    llm_client = None
    if not args.no_llm and settings.openai_api_key:
        llm_client = OpenAIChatClient(settings)
    embedding_client = HTTPEmbeddingClient(settings) if settings.visual_confirmation_enabled else None

    try:
        result = run_pairing(
            records,
            llm_client=llm_client,
            embedding_client=embedding_client,
            settings=settings,
            run_id=args.run_id,
        )
    except PairingError as exc:
        print(f"✗ Pairing aborted: {exc}", file=sys.stderr)
        return 1

    payload = json.dumps(result.to_output(), indent=2)
    if args.out:
        args.out.write_text(payload, encoding="utf-8")
        print(f"✓ Result written to {args.out}", file=sys.stderr)
    else:
        print(payload)

    t = result.metrics.totals
    print("─" * 40, file=sys.stderr)
    print(
        f"✅ {len(result.pairs)} pairs, {t.products} products, {t.singletons} singletons\n",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

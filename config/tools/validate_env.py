# config/tools/validate_env.py

import sys           # for exit codes
from dataclasses import asdict
from pprint import pprint  # for structured printing
import os            # for CI detection

# make src discoverable if running as a script
from pathlib import Path
# __file__ is .../config/tools/validate_env.py
# parents[2] is the project root; append ROOT/src
PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.append(str(PROJECT_ROOT / "src"))

from env.loader import load_environment  # import our loader

IS_CI = os.getenv("CI") == "true"


def main() -> None:
    """Load and print the resolved bot configuration, failing fast on errors."""
    try:
        cfg = load_environment()             # config/bot.yaml (or $BOT_CONFIG) + env overrides
    except (OSError, ValueError) as e:
        # Special case: in CI, ignore missing *local* model files
        is_missing_model = isinstance(e, FileNotFoundError) and "Missing model file" in str(e)
        if IS_CI and is_missing_model:
            print("Config validation WARNING (CI, missing model file):", file=sys.stderr)
            print(repr(e), file=sys.stderr)
            sys.exit(0)                      # treat as success in CI

        print("Config validation FAILED:", file=sys.stderr)
        print(repr(e), file=sys.stderr)
        sys.exit(1)                          # non-zero exit: CI will mark as failed

    print("Config validation OK.")
    print("\nMode:", cfg.mode)
    print("\nMinecraft server:")
    pprint(asdict(cfg.minecraft))
    print("\nBridge:")
    pprint(asdict(cfg.bridge))
    print("\nAdvanced:")
    pprint(asdict(cfg.advanced))
    print("\nLLM:")
    pprint(asdict(cfg.llm))


if __name__ == "__main__":
    main()  # run main() only when script is executed directly

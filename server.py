"""
Run the Flask proxy and game API.

Equivalent to the `llmchess-play-server` console script. Configuration comes
from settings.yml / environment (see config.py); invalid settings exit with code 2.
"""
import sys

from llmchess_play.server import main

if __name__ == "__main__":
    sys.exit(main())

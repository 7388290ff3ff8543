#!/usr/bin/env python3
"""
ollama-tour - Main Entry Point

Same commands as the installed ``ollama-tour`` script, runnable from a
checkout without installing.

Usage:
    python run.py models [--filter S] [--json] [--count]
    python run.py generate PROMPT [-m MODEL] [--system S] [-t TEMP] [--top-p P]
                           [--num-predict N] [--stream] [--retries N]
    python run.py chat [PROMPT] [-m MODEL] [--system S] [-i] [--stream]
    python run.py embed TEXT... [-m MODEL] [--similarity] [--json] [--dims N]
    python run.py health
    python run.py tour [--section KEY ...] [--output DIR] [--no-html]
    python run.py report JSON_FILE [--output HTML]
    python run.py serve [--host H] [--port P] [--results-dir DIR]

Examples:
    python run.py --host http://gpu-box:11434 models
    python run.py generate "Explain quantum computing in simple terms" -t 0.2
    python run.py embed "I love R" "Tigers are awesome" "Lions live in Africa" --similarity
    python run.py --profile profiles/example.yaml tour --section embeddings
    python run.py serve --port 8080
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from ollama_tour.cli import main

if __name__ == "__main__":
    main()

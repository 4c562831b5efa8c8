#!/usr/bin/env python3
"""
Credit Cooperative MIS Entry Point

Starts the FastAPI server with host and port from configuration.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from coop_mis.config import get_config
from coop_mis.api import run_server


if __name__ == "__main__":
    config = get_config()
    print("Starting Credit Cooperative MIS...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Credit Cooperative MIS...")

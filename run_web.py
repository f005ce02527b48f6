#!/usr/bin/env python3
"""
Entry point for the Research Contribution Incentive Portal.

Usage:
    python run_web.py

The application will be available at http://127.0.0.1:5050
"""

import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from research_portal import create_app

app = create_app()


if __name__ == "__main__":
    # Development server
    port = int(os.environ.get("PORT", 5050))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"

    print(
        f"""
================================================================================
    Research Contribution Incentive Portal
    Incentive calculation and review workflow API
================================================================================

    Server running at: http://127.0.0.1:{port}/research

    Press Ctrl+C to stop the server.
================================================================================
    """
    )

    app.run(
        host="127.0.0.1",
        port=port,
        debug=debug,
    )

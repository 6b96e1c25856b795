"""Local development entry point.

Usage:
    python run.py

The event stream holds a worker per connected client, so the dev server
runs threaded.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from kanban_sync import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001, threaded=True)

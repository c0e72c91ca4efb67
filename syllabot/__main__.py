"""Run the SyllaBot server: python -m syllabot"""

from syllabot.server.app import run_server

if __name__ == "__main__":
    run_server()

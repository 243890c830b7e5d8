"""
Allow the helpbot package to be executed as a module.

    python -m helpbot <password-or-password-file>
"""

from helpbot.main import run

if __name__ == "__main__":
    run()

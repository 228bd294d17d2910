"""
Run the desktop assistant: python -m desktop_assistant
"""

from .app import main

main()

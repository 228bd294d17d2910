"""
Desktop Assistant Application - Command-line entry point.

Wires the pieces together:
- Audio pipeline on the default microphone/speaker (sounddevice)
- Ollama conversation backend
- Console presentation
- Conversation session

Usage:
    python -m desktop_assistant
    python -m desktop_assistant --config my.yaml --debug
    python -m desktop_assistant --no-audio      # text only

Commands (typed at the prompt):
    <text>      Ask a question
    <empty>     Ask by voice (listen on the microphone)
    /cancel     Stop listening
    /prev       Previous result
    /next       Next result
    /retry      Ask the last question again
    /1 .. /9    Run a suggestion
    /settings   Show settings
    /close      Close the settings/error screen
    /quit       Exit
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .assistant.errors import AssistantError
from .assistant.session import ConversationSession
from .audio import SOUNDDEVICE_AVAILABLE, AudioPipeline, create_audio_pipeline
from .backend import BaseConversationBackend, OllamaBackend
from .config import AssistantConfig, load_config
from .presentation import ConsolePresentation

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

QUIT_COMMANDS = ("/quit", "/exit")


def create_backend(config: AssistantConfig) -> BaseConversationBackend:
    """Create the conversation backend named in the config."""
    provider = config.backend.provider
    if provider != "ollama":
        raise ValueError(f"Unknown backend provider: {provider}")
    logger.info(f"🧠 Backend: Ollama ({config.backend.model} @ {config.backend.base_url})")
    return OllamaBackend(config.backend)


class DesktopAssistant:
    """
    Console client around a ConversationSession.

    Reads one command per line from stdin; everything the session reports
    is printed by ConsolePresentation.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        enable_audio: bool = True,
        backend: Optional[BaseConversationBackend] = None,
        audio: Optional[AudioPipeline] = None,
        presentation: Optional[ConsolePresentation] = None,
    ):
        self.config = config or AssistantConfig()
        self.backend = backend or create_backend(self.config)
        self.presentation = presentation or ConsolePresentation()

        if audio is None and enable_audio:
            audio = self._create_audio()
        self.audio = audio

        self.session = ConversationSession(
            self.backend,
            self.audio,
            self.presentation,
            self.config,
        )
        self._running = False

        logger.info("DesktopAssistant created")

    def _create_audio(self) -> Optional[AudioPipeline]:
        if not SOUNDDEVICE_AVAILABLE:
            logger.warning("⚠️ sounddevice not available, running text-only")
            return None
        return create_audio_pipeline(self.config.audio)

    async def handle_command(self, line: str) -> bool:
        """
        Execute one command line.

        Returns:
            False when the user asked to quit
        """
        line = line.strip()
        session = self.session

        if line in QUIT_COMMANDS:
            return False

        try:
            if not line:
                await session.begin_turn()
            elif line == "/cancel":
                await session.cancel_listening()
            elif line == "/prev":
                await session.previous()
            elif line == "/next":
                await session.next()
            elif line == "/retry":
                await session.retry()
            elif line == "/settings":
                await session.open_settings()
                self._print_settings()
            elif line == "/close":
                await session.dismiss_overlay()
            elif line[1:].isdigit() and line.startswith("/"):
                await session.follow_up(int(line[1:]) - 1)
            elif line.startswith("/"):
                print(f"Unknown command: {line}")
            else:
                await session.begin_turn(line)
        except (AssistantError, IndexError) as e:
            print(f"⚠️  {e}")

        return True

    def _print_settings(self):
        config = self.session.config
        print("Settings:")
        print(f"  force_new_conversation: {config.force_new_conversation}")
        print(f"  enable_audio_output: {config.enable_audio_output}")
        print(f"  enable_mic_on_continuous_conversation: {config.enable_mic_on_continuous_conversation}")
        print(f"  enable_ping_sound: {config.enable_ping_sound}")
        print(f"  backend: {config.backend.provider} ({config.backend.model})")
        print("Type /close to go back.")

    async def run(self):
        """Run until /quit or end of input."""
        logger.info("🚀 Starting Desktop Assistant...")
        self._running = True
        loop = asyncio.get_running_loop()

        async with self.session:
            if self.backend.supports_audio and self.session.microphone_available:
                print("Type a question, press Enter to talk, /quit to exit.")
            else:
                print("Type a question and press Enter, /quit to exit.")
            while self._running:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                self._running = await self.handle_command(line)

        await self.backend.close()
        logger.info("👋 Goodbye!")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Desktop Assistant")
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to config file'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--no-audio',
        action='store_true',
        help='Text-only mode (no microphone or speaker)'
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)
    app = DesktopAssistant(config, enable_audio=not args.no_audio)

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted")


if __name__ == "__main__":
    main()

"""
Discord Bot Module

Chat surface for the support mediator.

Features:
- Answers mentions, DMs and /ask through the AnswerOrchestrator
- Per-user conversation memory (keyed by Discord user id)
- Redelivered messages are suppressed via the message id
- Slash commands for help, status and clearing history
- Rate limiting to prevent abuse

Usage:
    python run_bot.py

    Or:
    from support_mediator.discord_bot import create_bot
    bot = create_bot()
    bot.run_bot()
"""

import logging
import os
from datetime import datetime
from typing import Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import get_settings
from support_mediator.orchestrator import (
    AnswerOrchestrator,
    QueryOptions,
    QueryResponse,
    create_orchestrator,
)

logger = logging.getLogger(__name__)


class DiscordBot(commands.Bot):
    """
    Discord Bot that forwards user messages to the AnswerOrchestrator.

    The orchestrator is built lazily from settings unless one is injected.
    """

    def __init__(
        self,
        command_prefix: str = "!",
        orchestrator: Optional[AnswerOrchestrator] = None,
        **kwargs
    ):
        """
        Initialize the Discord Bot.

        Args:
            command_prefix: Prefix for text commands (default: "!")
            orchestrator: Optional pre-configured orchestrator
            **kwargs: Additional arguments for commands.Bot
        """
        # MESSAGE_CONTENT must also be enabled in the Developer Portal
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            **kwargs
        )

        self._orchestrator = orchestrator
        self._is_ready = False

        # Rate limiting (simple in-memory)
        self._rate_limits: Dict[int, datetime] = {}
        self._rate_limit_seconds = 3  # Seconds between requests per user

        self._stats = {
            "questions_answered": 0,
            "duplicates_suppressed": 0,
            "errors": 0,
            "start_time": None,
        }

        self.settings = get_settings()

        logger.info("DiscordBot initialized")

    @property
    def orchestrator(self) -> AnswerOrchestrator:
        """Get the orchestrator, building it on first use."""
        if self._orchestrator is None:
            logger.info("Initializing AnswerOrchestrator...")
            self._orchestrator = create_orchestrator(self.settings)
        return self._orchestrator

    async def setup_hook(self):
        """Called when the bot is starting up."""
        await self._register_commands()
        logger.info("Slash commands registered")

    async def _register_commands(self):
        """Register slash commands with Discord."""

        @self.tree.command(name="ask", description="Ask the support assistant a question")
        @app_commands.describe(question="Your question or problem")
        async def ask_command(interaction: discord.Interaction, question: str):
            await self._handle_question(interaction, question)

        @self.tree.command(name="help", description="Get help using the support bot")
        async def help_command(interaction: discord.Interaction):
            await self._send_help(interaction)

        @self.tree.command(name="status", description="Check bot status and statistics")
        async def status_command(interaction: discord.Interaction):
            await self._send_status(interaction)

        @self.tree.command(name="clear", description="Clear your conversation history")
        async def clear_command(interaction: discord.Interaction):
            await self._clear_history(interaction)

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready and connected."""
        self._is_ready = True
        self._stats["start_time"] = datetime.now()

        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name="your questions | /ask"
        )
        await self.change_presence(activity=activity)

    async def on_message(self, message: discord.Message):
        """Handle incoming messages."""
        if message.author == self.user:
            return

        if message.author.bot:
            return

        is_mentioned = self.user in message.mentions
        is_dm = isinstance(message.channel, discord.DMChannel)

        if is_mentioned or is_dm:
            content = message.content
            if is_mentioned:
                content = content.replace(f"<@{self.user.id}>", "").strip()
                content = content.replace(f"<@!{self.user.id}>", "").strip()

            if content:
                await self._handle_message_question(message, content)
            else:
                await message.reply(
                    "👋 Hi! I'm the support assistant. "
                    "Tell me what you need help with!\n"
                    "Use `/ask` or just mention me with your question."
                )

        await self.process_commands(message)

    async def _handle_message_question(self, message: discord.Message, question: str):
        """Handle a question from a regular message."""
        if self._is_redelivery(str(message.id)):
            return

        if not self._check_rate_limit(message.author.id):
            await message.reply(
                "⏳ Please wait a few seconds before asking another question.",
                delete_after=5
            )
            return

        async with message.channel.typing():
            try:
                response = await self._get_response(
                    question=question,
                    user_id=str(message.author.id),
                    message_id=str(message.id),
                )
                if response is None:
                    return

                embed = self._format_response_embed(question, response)
                await message.reply(embed=embed)

                self._stats["questions_answered"] += 1

            except Exception as e:
                logger.error(f"Error handling question: {e}")
                self._stats["errors"] += 1
                await message.reply(
                    "❌ Sorry, I encountered an error processing your question. "
                    "Please try again later."
                )

    async def _handle_question(self, interaction: discord.Interaction, question: str):
        """Handle a question from a slash command."""
        if self._is_redelivery(str(interaction.id)):
            return

        if not self._check_rate_limit(interaction.user.id):
            await interaction.response.send_message(
                "⏳ Please wait a few seconds before asking another question.",
                ephemeral=True
            )
            return

        # Shows "thinking..."
        await interaction.response.defer()

        try:
            response = await self._get_response(
                question=question,
                user_id=str(interaction.user.id),
                message_id=str(interaction.id),
            )
            if response is None:
                return

            embed = self._format_response_embed(question, response)
            await interaction.followup.send(embed=embed)

            self._stats["questions_answered"] += 1

        except Exception as e:
            logger.error(f"Error handling slash command: {e}")
            self._stats["errors"] += 1
            await interaction.followup.send(
                "❌ Sorry, I encountered an error processing your question. "
                "Please try again later."
            )

    def _is_redelivery(self, message_id: str) -> bool:
        """Already-answered events are dropped before rate limiting so they send nothing."""
        if self.orchestrator.is_duplicate(message_id):
            logger.info(f"Ignoring redelivered event {message_id}")
            self._stats["duplicates_suppressed"] += 1
            return True
        return False

    async def _get_response(
        self,
        question: str,
        user_id: str,
        message_id: str,
    ) -> Optional[QueryResponse]:
        """Run one turn. None means the message was already handled."""
        response = await self.orchestrator.query_embeddings(
            question,
            QueryOptions(user_id=user_id, message_id=message_id),
        )
        if response is None:
            self._stats["duplicates_suppressed"] += 1
            logger.info(f"Skipped duplicate message {message_id}")
        return response

    def _format_response_embed(
        self,
        question: str,
        response: QueryResponse,
    ) -> discord.Embed:
        """Format a QueryResponse as a Discord embed."""
        answer = response.answer or "No answer available."
        matches = response.matches

        # Color by the best context's weighted score; greetings have none
        if not matches:
            color = discord.Color.blue()
        elif matches[0].weighted_score >= 0.6:
            color = discord.Color.green()
        elif matches[0].weighted_score >= 0.4:
            color = discord.Color.yellow()
        else:
            color = discord.Color.orange()

        embed = discord.Embed(
            title="💬 Support",
            description=answer[:4000],  # Discord limit is 4096
            color=color,
            timestamp=datetime.now()
        )

        embed.add_field(
            name="❓ Question",
            value=question[:1000],
            inline=False
        )

        sources = []
        for match in matches:
            if match.source and match.source not in sources:
                sources.append(match.source)
            if len(sources) == 3:
                break
        if sources:
            embed.add_field(
                name="📄 Sources",
                value="\n".join(f"• {s}" for s in sources)[:1000],
                inline=True
            )

        embed.set_footer(text="Support Bot | Use /help for more info")

        return embed

    async def _send_help(self, interaction: discord.Interaction):
        """Send help information."""
        embed = discord.Embed(
            title="🤖 Support Bot - Help",
            description="I answer support questions in English, Portuguese and Spanish.",
            color=discord.Color.blue()
        )

        embed.add_field(
            name="💬 How to Ask Questions",
            value=(
                "**Option 1:** Use `/ask` command\n"
                "**Option 2:** Mention me with your question\n"
                "**Option 3:** Send me a DM"
            ),
            inline=False
        )

        embed.add_field(
            name="📝 Example Questions",
            value=(
                "• How do I change my email?\n"
                "• I'm having issues with payment\n"
                "• Necesito ayuda con mi cuenta\n"
                "• Como altero minha senha?"
            ),
            inline=False
        )

        embed.add_field(
            name="⚡ Commands",
            value=(
                "`/ask` - Ask a question\n"
                "`/help` - Show this help message\n"
                "`/status` - Bot status and stats\n"
                "`/clear` - Clear conversation history"
            ),
            inline=False
        )

        await interaction.response.send_message(embed=embed)

    async def _send_status(self, interaction: discord.Interaction):
        """Send bot status information."""
        uptime = "N/A"
        if self._stats["start_time"]:
            delta = datetime.now() - self._stats["start_time"]
            hours, remainder = divmod(int(delta.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime = f"{hours}h {minutes}m {seconds}s"

        embed = discord.Embed(
            title="📊 Bot Status",
            color=discord.Color.green() if self._is_ready else discord.Color.red()
        )

        embed.add_field(
            name="🟢 Status",
            value="Online" if self._is_ready else "Initializing...",
            inline=True
        )

        embed.add_field(name="⏱️ Uptime", value=uptime, inline=True)
        embed.add_field(name="🏠 Servers", value=str(len(self.guilds)), inline=True)
        embed.add_field(
            name="❓ Questions Answered",
            value=str(self._stats["questions_answered"]),
            inline=True
        )
        embed.add_field(
            name="💭 Active Conversations",
            value=str(len(self.orchestrator.conversation_manager)),
            inline=True
        )
        embed.add_field(
            name="🤖 LLM Provider",
            value=self.settings.llm.provider.capitalize(),
            inline=True
        )

        embed.set_footer(text=f"Latency: {round(self.latency * 1000)}ms")

        await interaction.response.send_message(embed=embed)

    async def _clear_history(self, interaction: discord.Interaction):
        """Clear the calling user's conversation history."""
        user_id = str(interaction.user.id)

        self.orchestrator.conversation_manager.delete_memory(user_id)
        await interaction.response.send_message(
            "✅ Conversation history cleared!",
            ephemeral=True
        )

    def _check_rate_limit(self, user_id: int) -> bool:
        """Check if user is rate limited."""
        now = datetime.now()

        if user_id in self._rate_limits:
            elapsed = (now - self._rate_limits[user_id]).total_seconds()
            if elapsed < self._rate_limit_seconds:
                return False

        self._rate_limits[user_id] = now
        return True

    def run_bot(self, token: Optional[str] = None):
        """
        Run the bot with the given token.

        Args:
            token: Discord bot token (or from environment)
        """
        token = token or os.getenv("DISCORD_BOT_TOKEN")

        if not token:
            raise ValueError(
                "Discord bot token not provided. "
                "Set DISCORD_BOT_TOKEN environment variable or pass token directly."
            )

        logger.info("Starting Discord bot...")
        self.run(token)


def create_bot(**kwargs) -> DiscordBot:
    """
    Factory function to create a configured Discord bot.

    Args:
        **kwargs: Arguments to pass to DiscordBot

    Returns:
        Configured DiscordBot instance
    """
    return DiscordBot(**kwargs)

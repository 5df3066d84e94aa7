"""
Run Discord Bot - Direct launch script
"""
import sys
import logging
import os

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

print("=" * 60)
print("  🤖 Support Mediator Bot - Starting...")
print("=" * 60)

from support_mediator.discord_bot import create_bot

print("""
Bot Commands:
  /ask <question>  - Ask the support assistant
  /help            - Show help information
  /status          - Show bot status
  /clear           - Clear your conversation history

You can also mention the bot or DM it with your question.

Press Ctrl+C to stop the bot.
""")

token = os.getenv("DISCORD_BOT_TOKEN")

if not token:
    print("❌ DISCORD_BOT_TOKEN not set in .env!")
    sys.exit(1)

# Remove quotes if present
token = token.strip('"').strip("'")

bot = create_bot()
bot.run_bot(token)

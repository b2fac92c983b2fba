#!/usr/bin/env python3
"""
Live smoke check for telegram_transport against the real Bot API.

Before running:
1. Set environment variables:
   export TELEGRAM_BOT_TOKEN="your_bot_token_here"
   export TELEGRAM_CHAT_ID="your_chat_id_here"   # only needed for the upload step

2. Or pass them directly to the script:
   python smoke_transport.py --token YOUR_TOKEN --chat-id YOUR_CHAT_ID
"""

import argparse
import io
import os
import sys
import traceback

from loguru import logger

from telegram_transport import Bot, NamedFile, RequestError, TelegramAPIError


def main():
    parser = argparse.ArgumentParser(description='Smoke test the Telegram transport')
    parser.add_argument('--token', help='Bot token (or set TELEGRAM_BOT_TOKEN env var)')
    parser.add_argument('--chat-id', help='Chat ID for the upload test (or set TELEGRAM_CHAT_ID env var)')
    parser.add_argument('--api-url', help='Bot API server (defaults to the public one)')
    args = parser.parse_args()

    token = args.token or os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = args.chat_id or os.getenv("TELEGRAM_CHAT_ID")

    try:
        # Test 1: bootstrap (getMe over GET)
        logger.info("🤖 Connecting...")
        bot = Bot(token, api_url=args.api_url)
        logger.info(f"✅ Connected as @{bot.username} (id {bot.id})")

        # Test 2: an API error comes back typed
        logger.info("📤 Calling an unknown method...")
        try:
            bot.get("definitelyNotAMethod")
        except TelegramAPIError as e:
            logger.info(f"✅ Got {type(e).__name__} code={e.code}: {e.description}")

        if not chat_id:
            logger.warning("⚠️  No chat id, skipping upload test")
            return

        # Test 3: multipart upload (POST with a file)
        logger.info("📤 Uploading a document...")
        document = NamedFile(io.BytesIO(b"This is a test file sent by telegram_transport."), "smoke.txt")
        result = bot.post("sendDocument", {"chat_id": chat_id, "caption": "📄 smoke test"}, {"document": document})
        logger.info(f"✅ Document sent! Message ID: {result['message_id']}")

        logger.info("\n🎉 All checks passed.")

    except ValueError as e:
        logger.error(f"❌ Configuration error: {e}")
        logger.info("Set TELEGRAM_BOT_TOKEN or pass --token")
        sys.exit(1)

    except (TelegramAPIError, RequestError) as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        sys.exit(1)

    except Exception as e:
        logger.error(f"❌ Unexpected error occurred: {e}")
        logger.debug(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()

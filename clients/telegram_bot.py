from __future__ import annotations
import os
from telegram import Update
from telegram.ext import ApplicationBuilder, CommandHandler, MessageHandler, ContextTypes, filters

API_URL = os.environ.get("HELPDESK_API_URL", "http://localhost:8000/api/chatbot/message")
API_KEY = os.environ.get("HELPDESK_API_KEY")
TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    context.user_data.pop("conversation_context", None)
    await update.message.reply_text(
        "Hi! I'm the Registrar's Office assistant. Ask me about transcripts, enrollment, grades, "
        "or say \"my tickets\" to check your requests."
    )

async def handle(update: Update, context: ContextTypes.DEFAULT_TYPE):
    import requests
    msg = update.message
    if msg is None or not msg.text:
        return

    payload = {"message": msg.text[:1000]}
    pending = context.user_data.pop("conversation_context", None)
    if pending:
        payload["conversationContext"] = pending
    headers = {"X-User-Id": f"tg_{update.effective_user.id}"}
    if API_KEY:
        headers["X-API-Key"] = API_KEY

    r = requests.post(API_URL, json=payload, headers=headers, timeout=60)
    try:
        body = r.json()
    except ValueError:
        await msg.reply_text(r.text[:3500])
        return
    if not body.get("success"):
        await msg.reply_text(body.get("message") or "Something went wrong, please try again.")
        return
    data = body.get("data") or {}
    if data.get("conversationContext"):
        context.user_data["conversation_context"] = data["conversationContext"]
    await msg.reply_text((data.get("text") or "")[:3500])

def main():
    if not TOKEN:
        raise RuntimeError("Set TELEGRAM_BOT_TOKEN env var.")
    app = ApplicationBuilder().token(TOKEN).build()
    app.add_handler(CommandHandler("start", start))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle))
    app.run_polling()

if __name__ == "__main__":
    main()

from __future__ import annotations

from chatrelay.app.completion.contracts import CompletionErrorKind

WELCOME_TEXT = """
🤖 Welcome to the AI Chat Bot

I'm ready to help you with:
• Answering questions
• Writing assistance
• Problem solving
• General conversation
• And much more!

Just send me any message and I'll respond using AI.

Commands:
/start - Show this welcome message
/ask question - Ask a specific question to AI
/clear - Clear our conversation history
/help - Show help information
""".strip()

ASK_MISSING_QUESTION_TEXT = (
    "❓ Please provide a question after the /ask command.\n\n"
    "Example: `/ask What is the capital of France?`"
)

ASK_USAGE_TEXT = """
❓ *How to use the /ask command:*

Format: `/ask [your question]`

*Examples:*
• `/ask What is the weather like?`
• `/ask How do I learn Python?`
• `/ask Write a short poem about cats`
• `/ask Explain quantum physics simply`

Just type your question after the /ask command and I'll respond using AI!
""".strip()

CLEAR_CONFIRMATION_TEXT = "🗑️ Conversation history cleared! Starting fresh."

HELP_TEXT = """
ℹ️ *How to use this bot:*

1. Use `/ask [question]` for specific questions
2. I remember our conversation context
3. Use /clear to start a new conversation
4. I can help with various tasks like writing, coding, math, etc.

*Tips:*
• Be specific in your questions for better responses
• I work best with clear, well-structured queries
• Feel free to ask follow-up questions

*Commands:*
/start - Welcome message
/ask [question] - Ask a specific question
/clear - Clear conversation history
/help - This help message
""".strip()

ERROR_NOTICES: dict[CompletionErrorKind, str] = {
    CompletionErrorKind.UNAUTHORIZED: (
        "❌ Authentication error. Please check the OpenAI API key."
    ),
    CompletionErrorKind.RATE_LIMITED: (
        "❌ Rate limit exceeded. Please try again in a moment."
    ),
    CompletionErrorKind.SERVICE_UNAVAILABLE: (
        "❌ OpenAI service temporarily unavailable. Please try again later."
    ),
    CompletionErrorKind.UNKNOWN: (
        "❌ Sorry, I encountered an error while processing your message."
    ),
}


def error_notice(kind: CompletionErrorKind) -> str:
    return ERROR_NOTICES.get(kind, ERROR_NOTICES[CompletionErrorKind.UNKNOWN])

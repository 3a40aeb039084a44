"""Agent prompt templates."""
from typing import Optional

from app.services.call_session.models import SessionContext


def get_system_prompt(company_name: str) -> str:
    """Generate system prompt for the phone agent."""
    return f"""You are a friendly and professional AI phone assistant for {company_name}.
Callers reach you by phone and hear your reply spoken aloud, after which the call ends.

When responding:
- Answer in one to three short sentences of plain spoken English
- Do not use markdown, lists, emojis, URLs or any markup
- If the caller wants a demo, a callback or a human, confirm that the team will follow up
- If you do not know something, say so and offer a follow-up
- End politely; the call hangs up right after your reply"""


def get_caller_summary(context: SessionContext) -> Optional[str]:
    """Describe the call for the model, if anything is known about it."""
    if not context.from_number and not context.to_number:
        return None
    return (
        f"Call {context.call_id} from {context.from_number or 'an unknown number'} "
        f"to {context.to_number or 'an unknown number'}."
    )

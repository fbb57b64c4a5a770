"""System prompts for LLM-backed summarization."""

TURN_SUMMARY_SYSTEM = """You summarise a single turn of a spoken conversation between a user and a
narrating agent.

Respond with ONLY the summary text, 2-3 sentences, focusing on:
- Key topics discussed
- Important decisions or insights
- Any questions asked or answered"""

BATCH_SUMMARY_SYSTEM = """You condense several turns of a spoken conversation into one summary that
will stand in for the originals once they age out of detailed memory.

Respond with ONLY the summary text, focusing on:
- Main topics discussed across all turns
- Key insights or decisions made
- Important patterns or themes
- Questions asked and answers provided"""


def turn_prompt(user_text: str, agent_text: str) -> str:
    return f"User: {user_text}\nAssistant: {agent_text}\n\nSummary:"


def batch_prompt(turns: list[tuple[str, str]], target_words: int) -> str:
    combined = "\n\n".join(
        f"Turn {i + 1}:\nUser: {user}\nAssistant: {agent}"
        for i, (user, agent) in enumerate(turns)
    )
    return (
        f"Summarise these {len(turns)} conversation turns in approximately "
        f"{target_words} words.\n\nConversations:\n{combined}\n\nSummary:"
    )

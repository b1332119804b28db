"""
Response Generator - direct LLM replies

Used when the gateway is not in the loop:
- Voice calls (every caller turn)
- SMS when the gateway is not authenticated

Takes the conversation so far, returns the next agent line. Never raises:
failures come back as a short apology the caller can hear or read.
"""

from typing import Dict, List, Sequence
from agents import Agent, Runner, set_default_openai_key
from models.call import Speaker, Turn
from config.settings import config
from utils.logger import setup_logger

logger = setup_logger(__name__)

VOICE_INSTRUCTIONS = """You are Agent Zero, an AI assistant answering a phone call.
Keep responses concise and conversational: they will be spoken aloud via text-to-speech.
Avoid markdown, bullet points, or long lists. Respond naturally as if speaking on the phone.
Limit responses to 2-3 sentences."""

SMS_INSTRUCTIONS = """You are Agent Zero, an AI assistant replying to a text message.
Reply in plain text suitable for SMS: short, friendly, no markdown.
Keep it under 300 characters unless the question needs more."""

UNAVAILABLE_REPLY = "I'm sorry, I'm unable to process your request right now. Please try again later."
ERROR_REPLY = "I'm having a bit of trouble processing that. Could you repeat your question?"
EMPTY_REPLY = "I'm sorry, could you say that again?"


def to_input_messages(turns: Sequence[Turn]) -> List[Dict[str, str]]:
    """Map caller turns to the user role and agent turns to the assistant role."""
    return [
        {
            'role': 'user' if turn.speaker == Speaker.CALLER else 'assistant',
            'content': turn.text
        }
        for turn in turns
    ]


class ResponseGenerator:
    """Agent-backed reply generator for voice and SMS."""

    def __init__(self, api_key: str = None, model: str = None):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        model = model or config.RESPONSE_MODEL

        if self.api_key:
            set_default_openai_key(self.api_key)

        self.agents = {
            'voice': Agent(name="Agent Zero Voice", instructions=VOICE_INSTRUCTIONS, model=model),
            'sms': Agent(name="Agent Zero SMS", instructions=SMS_INSTRUCTIONS, model=model),
        }

    async def generate(self, turns: Sequence[Turn], channel: str = 'voice') -> str:
        """
        Produce the next agent reply.

        Args:
            turns: Conversation so far, oldest first, ending with the caller
            channel: 'voice' or 'sms' (selects the instructions)

        Returns:
            Reply text
        """
        if not self.api_key:
            logger.warning("No OpenAI API key configured, returning fallback reply")
            return UNAVAILABLE_REPLY

        agent = self.agents.get(channel, self.agents['voice'])

        try:
            result = await Runner.run(agent, to_input_messages(turns))
        except Exception as e:
            logger.error(f"Response generation failed ({channel}): {e}")
            return ERROR_REPLY

        text = str(result.final_output or '').strip()
        return text or EMPTY_REPLY

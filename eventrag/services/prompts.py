"""
Prompt templates for map description, grounded answering and message
classification.
"""
from typing import List

from eventrag.models.schemas import ChunkResult

NO_INFORMATION_ANSWER = "I don't have that information in the event documents."

INDOOR_MAP_PROMPT = (
    "Describe this indoor map in detail. List all rooms, landmarks, and explain "
    "how to navigate between them. Be specific about locations."
)

ANSWER_PROMPT = """You are a helpful event assistant. Answer the question based ONLY on the provided context from event documents.

CONTEXT:
{context}

QUESTION: {question}

INSTRUCTIONS:
- Answer concisely and accurately using only the provided context
- If the answer is not in the context, say "{no_information}"
- Be friendly and helpful
- Keep answers under {max_words} words

ANSWER:"""

CLASSIFICATION_PROMPT = """Analyze this attendee message and determine if it requires organizer attention (flagging).

MESSAGE: "{message}"

Flag the message (should_flag=true) if it contains:
- Bug reports or technical issues
- Complaints or negative feedback
- Safety concerns or emergencies
- Payment/refund issues
- Requests that require human intervention
- Confusion that couldn't be answered by FAQs

Do NOT flag if:
- It's a simple FAQ question
- It's a thank you or positive feedback
- It can be easily answered by documentation

Respond with JSON only, in this format:
{{
  "should_flag": true or false,
  "confidence": number between 0.0 and 1.0,
  "reason": "brief explanation"
}}"""


def build_answer_prompt(question: str, chunks: List[ChunkResult], max_words: int = 200) -> str:
    """Number the retrieved chunks as context blocks and append the question."""
    context = "\n\n".join(f"[{i + 1}] {chunk.content}" for i, chunk in enumerate(chunks))
    return ANSWER_PROMPT.format(
        context=context,
        question=question,
        no_information=NO_INFORMATION_ANSWER,
        max_words=max_words,
    )


def build_classification_prompt(message: str) -> str:
    return CLASSIFICATION_PROMPT.format(message=message)

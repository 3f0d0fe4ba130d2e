# KimbleAI - retrieval-augmented chat.
# The user's own stored knowledge is retrieved first and injected into the
# prompt. Retrieval can come back empty (new user, embedding outage); the
# answer is then produced from the base prompt alone.

import time
from typing import Optional

from kimble.config import CHAT_MODEL, RAG_TOP_K, STORE_CONVERSATIONS, USERS
from kimble.knowledge import KnowledgeRetriever, SourceType, format_context
from kimble.llm import get_claude, response_text

SYSTEM_PROMPT = """You are KimbleAI, a private assistant for the Kimble family ({names}).
You are talking with {user}.

When a "Stored Knowledge" block is present it contains notes, files, emails and
earlier conversations that belong to {user}. Prefer it over general knowledge
whenever it is relevant, and say so when you rely on it. Never invent details
about the family that are not in the stored knowledge.

When no stored knowledge is present, answer from general knowledge and be clear
about what you do not know. Be concise. Use bullet points for lists."""


def build_system_prompt(user_id: str) -> str:
    names = " and ".join(USERS.values())
    return SYSTEM_PROMPT.format(names=names, user=USERS.get(user_id, user_id))


def build_messages(question: str, context: str, chat_history: Optional[list] = None) -> list:
    """
    chat_history is a list of {"role": "user"/"assistant", "content": "..."} dicts.
    The context block is only added when retrieval found something.
    """
    messages = []
    if chat_history:
        messages.extend(
            {"role": m["role"], "content": m["content"]}
            for m in chat_history
            if isinstance(m, dict) and m.get("role") in ("user", "assistant") and m.get("content")
        )
    content = f"Stored Knowledge:\n{context}\n\nQuestion: {question}" if context else question
    messages.append({"role": "user", "content": content})
    return messages


def remember_turn(retriever: KnowledgeRetriever, user_id: str, question: str, answer: str) -> None:
    """Store the exchange as a conversation chunk. Best effort: failures only cost future recall."""
    if not STORE_CONVERSATIONS:
        return
    try:
        retriever.store.ingest(
            user_id,
            f"user: {question}\nassistant: {answer}",
            SourceType.CONVERSATION,
            importance=0.3,
        )
    except Exception as e:
        print(f"[RAG] Could not store conversation turn: {e}")


def ask(
    retriever: KnowledgeRetriever,
    user_id: str,
    question: str,
    chat_history: Optional[list] = None,
    client=None,
    top_k: int = RAG_TOP_K,
) -> dict:
    """Answer `question` for `user_id`. Returns {"answer", "sources"}."""
    client = client or get_claude()
    chunks = retriever.retrieve(user_id, question, top_k)
    context = format_context(chunks)

    response = client.messages.create(
        model=CHAT_MODEL,
        max_tokens=2048,
        system=build_system_prompt(user_id),
        messages=build_messages(question, context, chat_history),
    )
    answer = response_text(response)
    remember_turn(retriever, user_id, question, answer)
    return {"answer": answer, "sources": [c.to_dict(preview_chars=200) for c in chunks]}


def stream_ask(
    retriever: KnowledgeRetriever,
    user_id: str,
    question: str,
    chat_history: Optional[list] = None,
    client=None,
    top_k: int = RAG_TOP_K,
):
    """Same as ask() but yields text chunks as they arrive from the API."""
    client = client or get_claude()
    t_start = time.time()
    chunks = retriever.retrieve(user_id, question, top_k)
    context = format_context(chunks)
    t_retrieved = time.time()
    print(f"[TIMING] retrieve total={t_retrieved - t_start:.2f}s")

    pieces = []
    with client.messages.stream(
        model=CHAT_MODEL,
        max_tokens=2048,
        system=build_system_prompt(user_id),
        messages=build_messages(question, context, chat_history),
    ) as stream:
        first_token = True
        for text in stream.text_stream:
            if first_token:
                print(f"[TIMING] time_to_first_token={time.time() - t_retrieved:.2f}s")
                first_token = False
            pieces.append(text)
            yield text

    remember_turn(retriever, user_id, question, "".join(pieces))

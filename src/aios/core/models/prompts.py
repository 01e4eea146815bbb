from __future__ import annotations

ORCHESTRATOR_SYSTEM_PROMPT = (
    "You are the AIos Orchestration Agent (gNode). Your sole purpose is to analyze the user's request "
    "and categorize it into one of the following high-level intents: "
    "'calendar_tool' (for scheduling, meetings, or time-related tasks), "
    "'communication_tool' (for drafting emails, messages, or reports), "
    "'image_generation' (for creating visual assets), "
    "'knowledge_response' (for queries requiring up-to-date web information or complex, multi-paragraph answers), "
    "or 'general_chat' (for all other simple conversational queries). "
    "Do not generate any text outside of the JSON structure."
)

GROUNDED_RESPONDER_PROMPT = (
    "Act as a helpful, grounded assistant. Use Google Search to find current, factual information "
    "to answer the user's query concisely and accurately. "
    "Include citation links if they are returned by the API."
)

CONVERSATIONAL_RESPONDER_PROMPT = "Act as a helpful assistant, providing a concise, conversational answer."

# Structured-output constraint for the classifier reply, in the endpoint's schema dialect.
ORCHESTRATION_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "intent": {
            "type": "STRING",
            "description": (
                "The primary intent or tool required: 'calendar_tool', 'communication_tool', "
                "'image_generation', 'knowledge_response', or 'general_chat'."
            ),
        },
        "tool_triggered": {
            "type": "STRING",
            "description": (
                "A friendly name for the tool that was triggered "
                "(e.g., 'Calendar API', 'Email Draft', 'Imagen Tool', 'Knowledge Responder')."
            ),
        },
        "arguments": {
            "type": "OBJECT",
            "description": "Key-value pairs representing the arguments for the selected tool.",
            "properties": {
                "query": {"type": "STRING", "description": "The original user query or a brief summary of the task."},
            },
        },
    },
    "required": ["intent", "tool_triggered", "arguments"],
}


def responder_system_prompt(grounded: bool) -> str:
    return GROUNDED_RESPONDER_PROMPT if grounded else CONVERSATIONAL_RESPONDER_PROMPT

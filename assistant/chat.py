"""
Chat service wiring a chat-completion model to the MCP tool layer.

The model itself is an external collaborator; this module only defines
the interface it must satisfy and runs the tool-call loop around it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .mcp_client.aggregator import CapabilityProvider
from .mcp_client.config import McpConfig
from .mcp_client.parsing import ToolDescriptor
from .mcp_client.provider import ToolProviderService

logger = logging.getLogger(__name__)

HISTORY_PLACEHOLDER = "{conversation_history}"
NEW_SESSION_CONTEXT = "New session, no previous conversation."
ERROR_REPLY_PREFIX = "Sorry, something went wrong during the conversation: "


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    name: str
    arguments: Union[str, Dict[str, Any]] = ""
    id: str = ""


@dataclass
class ChatResponse:
    """One model turn: reply text and any requested tool calls."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


class ChatModel(ABC):
    """Chat-completion model interface."""

    @abstractmethod
    def generate(
        self, messages: List[Dict[str, Any]], tools: Sequence[ToolDescriptor]
    ) -> ChatResponse:
        """Produce the next assistant turn for a conversation."""


def build_system_prompt(
    system_prompt: Optional[str], conversation_history: Optional[str]
) -> Optional[str]:
    """Substitute the conversation history placeholder in a system prompt."""
    if system_prompt is None:
        return None
    if conversation_history and conversation_history.strip():
        return system_prompt.replace(HISTORY_PLACEHOLDER, conversation_history)
    return system_prompt.replace(HISTORY_PLACEHOLDER, NEW_SESSION_CONTEXT)


class AssistantService:
    """Answers user messages, letting the model call MCP or default tools."""

    def __init__(
        self,
        chat_model: ChatModel,
        tool_provider_service: ToolProviderService,
        max_tool_rounds: int = 5,
    ):
        if max_tool_rounds < 0:
            raise ValueError("max_tool_rounds must be non-negative")
        self.chat_model = chat_model
        self.tool_provider_service = tool_provider_service
        self.max_tool_rounds = max_tool_rounds

    def chat(
        self,
        chat_id: str,
        message: str,
        system_prompt: Optional[str],
        mcp_config: Optional[McpConfig],
        conversation_history: Optional[str] = None,
    ) -> str:
        """
        Answer one user message.

        Args:
            chat_id: Conversation identifier, used for logging
            message: The user's message
            system_prompt: Prompt template, may contain {conversation_history}
            mcp_config: MCP configuration for this conversation's business type
            conversation_history: Rendered previous turns, if any

        Returns:
            The assistant's reply. Failures are reported in the reply text.
        """
        try:
            logger.info(
                f"Starting chat: chat_id={chat_id}, has_history={conversation_history is not None}"
            )
            prompt = build_system_prompt(system_prompt, conversation_history)

            messages: List[Dict[str, Any]] = []
            if prompt and prompt.strip():
                messages.append({"role": "system", "content": prompt})
            messages.append({"role": "user", "content": message})

            provider = self.tool_provider_service.resolve_tools(mcp_config)
            reply = self._run(messages, provider)

            logger.info(f"Chat completed: chat_id={chat_id}, response_length={len(reply)}")
            return reply
        except Exception as e:
            logger.error(f"Chat failed: chat_id={chat_id}: {e}")
            return f"{ERROR_REPLY_PREFIX}{e}"

    def _run(
        self, messages: List[Dict[str, Any]], provider: Optional[CapabilityProvider]
    ) -> str:
        tools = provider.list_tools() if provider is not None else []

        for _ in range(self.max_tool_rounds):
            response = self.chat_model.generate(messages, tools)
            if not response.tool_calls or provider is None:
                return response.text

            messages.append(
                {
                    "role": "assistant",
                    "content": response.text,
                    "tool_calls": [
                        {"id": call.id, "name": call.name, "arguments": call.arguments}
                        for call in response.tool_calls
                    ],
                }
            )
            for call in response.tool_calls:
                logger.info(f"Calling tool {call.name}")
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "name": call.name,
                        "content": provider.invoke(call.name, call.arguments),
                    }
                )

        logger.warning(f"Tool call limit of {self.max_tool_rounds} rounds reached")
        return self.chat_model.generate(messages, []).text

    def is_healthy(self) -> bool:
        """The model must exist and some tool source must be reachable."""
        model_ok = self.chat_model is not None
        provider_ok = self.tool_provider_service is not None
        defaults = self.tool_provider_service.get_default_tools() if provider_ok else None
        tools_ok = defaults is not None and len(defaults) > 0
        logger.debug(
            f"Health check: chat_model={model_ok}, tools={tools_ok}, tool_provider={provider_ok}"
        )
        return model_ok and (tools_ok or provider_ok)

"""
Standard tool result envelope - enforced by the dispatcher

Every collaborator must return {success, message, data?}. Anything else is a
ToolContractViolation (see runner.ToolRunner).
"""
import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

# Tool payloads fed back to the model are cut at this size
MAX_LLM_CONTENT_CHARS = 12000


class ToolResult(BaseModel):
    """
    Canonical outcome of a tool execution, successful or not.

    Example:
        return ToolResult(
            success=True,
            message="3 clients trouvés",
            data={"clients": [...]}
        )
    """
    model_config = ConfigDict(extra="ignore")

    success: StrictBool = Field(description="Whether the tool executed successfully")
    message: StrictStr = Field(description="Human-readable message for the model and the user")
    data: Any = Field(default=None, description="Tool result data")

    def to_llm_content(self, max_chars: int = MAX_LLM_CONTENT_CHARS) -> str:
        """
        Serialize for a role=tool message.

        Oversized payloads keep success/message and a truncated data preview
        so the model still sees the outcome.
        """
        content = json.dumps(self.model_dump(mode="json"), ensure_ascii=False, default=str)
        if len(content) <= max_chars:
            return content

        preview = json.dumps(self.data, ensure_ascii=False, default=str)[: max_chars // 2]
        return json.dumps({
            "success": self.success,
            "message": self.message,
            "data_truncated": True,
            "data_preview": preview,
        }, ensure_ascii=False)


class ToolSuccess(ToolResult):
    """Convenience class for successful results"""

    def __init__(self, message: str, data: Any = None, **kwargs):
        super().__init__(success=True, message=message, data=data, **kwargs)


class ToolError(ToolResult):
    """Convenience class for failed results"""

    def __init__(self, message: str, data: Optional[Any] = None, **kwargs):
        super().__init__(success=False, message=message, data=data, **kwargs)

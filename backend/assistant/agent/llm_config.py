"""
LLM Configuration - Type-safe settings for LiteLLM calls
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import Config


class LLMConfig(BaseModel):
    """
    Configuration for LLM API calls via LiteLLM

    Timeouts are not set here: the supervisor owns them so retry and
    deadline semantics stay in one place.
    """
    model_config = ConfigDict(validate_assignment=True, extra="allow", protected_namespaces=())

    model: str = Field(description="Model to use (e.g., 'gpt-4o-mini')")
    api_key: Optional[str] = Field(None, description="API key for the provider")
    temperature: float = Field(0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(None, gt=0, description="Maximum tokens to generate")
    user: Optional[str] = Field(None, description="User identifier for provider-side tracking")

    def to_litellm_kwargs(self) -> Dict[str, Any]:
        """
        Convert to LiteLLM kwargs dictionary

        Returns:
            Dict with only non-None values for passing to acompletion()
        """
        kwargs: Dict[str, Any] = {"model": self.model}
        for field_name, value in self.model_dump(exclude={"model"}).items():
            if value is not None:
                kwargs[field_name] = value
        # litellm must not retry on its own; the supervisor does
        kwargs["num_retries"] = 0
        return kwargs

    @classmethod
    def from_config(cls) -> "LLMConfig":
        return cls(
            model=Config.LLM_MODEL,
            api_key=Config.OPENAI_API_KEY,
            temperature=Config.LLM_TEMPERATURE,
        )

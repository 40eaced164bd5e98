"""Pydantic models for video generation results."""

from pydantic import BaseModel, Field


class WorkflowStep(BaseModel):
    """A server-suggested follow-up action shown after a generation."""

    id: str = Field(..., description="Step identifier")
    title: str = Field(..., description="Short label for the step")
    detail: str = Field("", description="Longer description of the step")
    action_prompt: str | None = Field(None, description="Prompt to send when the step is tapped")

    model_config = {"frozen": True}

    @property
    def follow_up_prompt(self) -> str:
        """Prompt used when the step is tapped: action_prompt, else title."""
        if self.action_prompt:
            return self.action_prompt
        return self.title


class GenerationResult(BaseModel):
    """Outcome of a successful start or refine call."""

    video_reference: str = Field(..., description="URL of the produced video asset")
    workflow_steps: list[WorkflowStep] = Field(
        default_factory=list,
        description="Suggested follow-up steps, in server order"
    )
    session_id: str | None = Field(None, description="Session correlating generation and refinements")

    model_config = {"frozen": True}

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt, field_validator, model_validator

QuestionType = Literal["mcq", "truefalse"]
AnswerValue = Union[StrictBool, StrictInt]


class Question(BaseModel):
    """
    Exam question model.

    mcq answers are 0-based option indexes; truefalse answers are booleans.
    """

    model_config = {"frozen": True}

    id: str = Field(
        ...,
        min_length=1,
        description="Question identifier (unique within the bank)"
    )
    question: str = Field(
        ...,
        min_length=1,
        description="Question text"
    )
    type: QuestionType = Field(
        "mcq",
        description="mcq | truefalse"
    )
    options: List[str] = Field(
        default_factory=list,
        description="Option list (mcq only)"
    )
    correct_answer: AnswerValue = Field(
        ...,
        description="Option index (mcq) or boolean (truefalse)"
    )
    category: Optional[str] = Field(
        None,
        description="Category tag. Empty means the question is shown to every category."
    )
    question_en: Optional[str] = None
    image: Optional[str] = None

    @field_validator("options")
    @classmethod
    def strip_trailing_blank_options(cls, v: List[str]) -> List[str]:
        """Sheets pad to four options; trailing blanks are dropped, inner blanks rejected."""
        opts = [s.strip() for s in v]
        while opts and not opts[-1]:
            opts.pop()
        if any(not o for o in opts):
            raise ValueError("Options must not be blank.")
        return opts

    @model_validator(mode="after")
    def validate_answer_shape(self) -> "Question":
        """
        mcq: at least two options and the answer index must point at one of them.
        truefalse: the answer must be a boolean and no options are kept.
        """
        if self.type == "mcq":
            if len(self.options) < 2:
                raise ValueError("A multiple-choice question needs at least 2 options.")
            if isinstance(self.correct_answer, bool):
                raise ValueError("A multiple-choice answer must be an option index.")
            if not 0 <= self.correct_answer < len(self.options):
                raise ValueError(
                    f"Answer index {self.correct_answer} is outside the option list "
                    f"(0..{len(self.options) - 1})."
                )
        else:
            if not isinstance(self.correct_answer, bool):
                raise ValueError("A true/false answer must be true or false.")
            if self.options:
                object.__setattr__(self, "options", [])
        return self

    def accepts(self, value) -> bool:
        """True if `value` is a well-formed answer for this question."""
        if self.type == "truefalse":
            return isinstance(value, bool)
        return (
            isinstance(value, int)
            and not isinstance(value, bool)
            and 0 <= value < len(self.options)
        )

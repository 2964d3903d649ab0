"""Structured output schemas passed to the model as response schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

Difficulty = Literal["Easy", "Medium", "Hard"]


class Topic(BaseModel):
    title: str = Field(description="Topic title")
    description: str = Field(description="Detailed description of the topic")
    importance_score: float = Field(ge=0, le=1, description="Importance score 0-1")
    marks_value: float = Field(
        ge=0, le=50, description="Estimated marks for this topic (0-50)"
    )
    has_diagrams: bool = Field(description="Whether this topic involves diagrams")
    key_points: list[str] = Field(
        min_length=3, description="3+ concise key learning points"
    )


class TopicConnection(BaseModel):
    topic_a_idx: int
    topic_b_idx: int
    relationship: str
    strength: float = Field(ge=0, le=1)


class TopicsResult(BaseModel):
    topics: list[Topic] = Field(
        min_length=1, max_length=200, description="Extract at least 1 topic, up to 200"
    )
    connections: Optional[list[TopicConnection]] = None


class QuestionAnswer(BaseModel):
    question: str = Field(description="Important exam-style question")
    answer: str = Field(
        description=(
            "Concise, well-structured answer (aim for 350-450 words). Use short "
            "sub-headings and bullet points rather than long paragraphs."
        )
    )
    unit_reference: Optional[str] = Field(
        default=None,
        description="Optional: which unit within the syllabus this question is based on",
    )


class AnswersResult(BaseModel):
    questions_answers: list[QuestionAnswer] = Field(
        min_length=3,
        max_length=6,
        description="3-6 exam-style questions with concise answers.",
    )


class CodingTopic(BaseModel):
    id: str = Field(description="Unique identifier for the topic")
    title: str = Field(description="Topic title")
    description: str = Field(
        description="Brief description of the topic (2-3 sentences)"
    )
    key_points: list[str] = Field(description="3-5 key learning points")
    difficulty: Difficulty = Field(description="Difficulty level")
    estimated_problems: int = Field(
        ge=0, le=5, description="Estimated number of coding problems for this topic"
    )


class CodingTopicsResult(BaseModel):
    topics: list[CodingTopic] = Field(
        min_length=3,
        max_length=10,
        description="3-10 programming topics extracted from the syllabus content",
    )


class CodingProblem(BaseModel):
    problem_title: str = Field(
        description="Short, descriptive title for the coding problem"
    )
    problem_statement: str = Field(description="Brief problem statement (1-2 sentences)")
    code_solution: str = Field(description="Complete C language code solution")
    explanation: str = Field(
        description="Explanation of the important functions and how they are used"
    )
    algorithm_type: Optional[str] = Field(
        default=None, description="Type of algorithm (e.g., 'sorting')"
    )
    difficulty: Optional[Difficulty] = None
    time_complexity: Optional[str] = Field(
        default=None, description="Big-O time complexity (e.g., 'O(n log n)')"
    )
    space_complexity: Optional[str] = Field(
        default=None, description="Big-O space complexity (e.g., 'O(1)')"
    )
    needs_diagram: Optional[bool] = None


class CodingProblemsResult(BaseModel):
    coding_problems: list[CodingProblem] = Field(
        min_length=1,
        max_length=5,
        description="1-5 coding problems tailored to the topic.",
    )

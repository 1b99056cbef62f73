from __future__ import annotations

from pydantic import BaseModel, Field


class QuizStartRequest(BaseModel):
    user_id: int = Field(default=1)
    difficulty: str = Field(default="all")
    quiz_type: str = Field(default="multiple-choice")
    length: int = Field(default=10, ge=1, le=50)
    source_dialect: str = Field(default="darija")
    target_dialect: str = Field(default="all")
    seed: int | None = None


class AnswerRequest(BaseModel):
    answer: str


class TokenSelectRequest(BaseModel):
    index: int = Field(ge=0)


class TokenUnselectRequest(BaseModel):
    position: int = Field(ge=0)


class PreferencesUpdateRequest(BaseModel):
    user_id: int = Field(default=1)
    target_dialect: str | None = None
    daily_goal: int | None = Field(default=None, ge=1, le=200)
    sound_enabled: bool | None = None
    theme: str | None = None
    reminder_time: str | None = None


class MasteredRequest(BaseModel):
    user_id: int = Field(default=1)
    phrase_id: str


class SignInRequest(BaseModel):
    display_name: str = Field(min_length=1, max_length=80)
    email: str | None = None


class SignOutRequest(BaseModel):
    token: str


class ProfileUpdateRequest(BaseModel):
    user_id: int = Field(default=1)
    display_name: str | None = Field(default=None, max_length=80)
    email: str | None = None
    avatar: str | None = None

"""
Quest and Learning Module Definitions

Quests and modules are static templates. The only per-user state attached to
them is the claimed-quest set and the completed-module set, both owned by the
session.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuestType(str, Enum):
    """Completion predicate a quest is evaluated with."""
    LOG_TRANSACTIONS = "logTransactions"
    SAVE_TO_GOAL = "saveToGoal"
    STAY_UNDER_BUDGET = "stayUnderBudget"
    QUIZ = "quiz"


class QuestCategory(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SPECIAL = "special"


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    options: tuple[str, ...] = Field(..., min_length=2)
    correct_answer: int = Field(..., ge=0, description="Index into options")

    @model_validator(mode="after")
    def validate_answer_index(self) -> "QuizQuestion":
        if self.correct_answer >= len(self.options):
            raise ValueError("correct_answer must index one of the options")
        return self

    def is_correct(self, option: int) -> bool:
        return option == self.correct_answer


class Quest(BaseModel):
    """
    A quest template.

    `target` means different things per type:
    - logTransactions: number of expenses to log today
    - saveToGoal: amount in base (USD) units, converted to the user's currency
    - stayUnderBudget: the id of the budgeted category
    - quiz: number of correct answers (always 1)
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: QuestType
    category: QuestCategory
    title: str
    description: str
    xp_reward: int = Field(..., gt=0)
    target: Union[int, str]
    video_search_query: Optional[str] = None
    quiz: Optional[QuizQuestion] = None

    @model_validator(mode="after")
    def validate_target(self) -> "Quest":
        if self.type is QuestType.STAY_UNDER_BUDGET:
            if not isinstance(self.target, str):
                raise ValueError("stayUnderBudget quests target a category id")
        elif not isinstance(self.target, int):
            raise ValueError(f"{self.type.value} quests need a numeric target")
        if self.type is QuestType.QUIZ and self.quiz is None:
            raise ValueError("quiz quests need a question")
        return self


class InvestmentModule(BaseModel):
    """A short lesson that ends in a one-question quiz."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    emoji: str
    description: str
    content: tuple[str, ...]
    quiz: QuizQuestion
    xp_reward: int = Field(..., gt=0)


# Base USD amount for the weekly saving quest
GOAL_CONTRIBUTION_QUEST_TARGET = 20


QUESTS: tuple[Quest, ...] = (
    Quest(
        id="q1",
        type=QuestType.QUIZ,
        category=QuestCategory.SPECIAL,
        title="Finance 101 Quiz",
        description="What's the best way to grow your money over time?",
        xp_reward=30,
        target=1,
        video_search_query="what is compound interest for teens",
        quiz=QuizQuestion(
            question="What's the best way to grow your money over time?",
            options=(
                "Hiding it under a mattress",
                "A high-yield savings account",
                "Spending it all immediately",
            ),
            correct_answer=1,
        ),
    ),
    Quest(
        id="q2",
        type=QuestType.LOG_TRANSACTIONS,
        category=QuestCategory.DAILY,
        title="Tracker Titan",
        description="Log 3 expenses in a single day to build a habit.",
        xp_reward=40,
        target=3,
        video_search_query="why is it important to track spending",
    ),
    Quest(
        id="q3",
        type=QuestType.SAVE_TO_GOAL,
        category=QuestCategory.WEEKLY,
        title="Goal Getter",
        description="Contribute at least {amount} to any goal this week.",
        xp_reward=50,
        target=GOAL_CONTRIBUTION_QUEST_TARGET,
        video_search_query="how to set and reach savings goals",
    ),
    Quest(
        id="q4",
        type=QuestType.STAY_UNDER_BUDGET,
        category=QuestCategory.WEEKLY,
        title="Budget Boss",
        description="Keep your Gaming spending under budget for the month.",
        xp_reward=75,
        target="cat-gaming",
        video_search_query="how to create a budget for teens",
    ),
)


INVESTMENT_MODULES: tuple[InvestmentModule, ...] = (
    InvestmentModule(
        id="m1",
        title="Investing 101",
        emoji="🌱",
        description="Why should you care about investing?",
        xp_reward=100,
        content=(
            "Imagine planting a seed. You water it, and over time, it grows into a huge tree. "
            "Investing is just like that, but with money!",
            "When you keep money in a piggy bank, it stays the same. But inflation means that "
            "the same money buys less in the future.",
            "Investing puts your money to work. You buy assets that you hope will become more "
            "valuable over time.",
            "Key Concept: Compound Interest. It's interest on top of interest.",
        ),
        quiz=QuizQuestion(
            question="What happens to money kept in a piggy bank over a long time due to inflation?",
            options=("It grows in value", "It loses buying power", "It doubles", "It turns into gold"),
            correct_answer=1,
        ),
    ),
    InvestmentModule(
        id="m2",
        title="Stocks vs. Bonds",
        emoji="⚖️",
        description="Understanding the main building blocks.",
        xp_reward=100,
        content=(
            "Stocks mean you own a tiny slice of a company. If the company does well, the stock "
            "price goes up. If they fail, it goes down. High risk, high reward.",
            "Bonds are like loaning money to a company or government. They promise to pay you "
            "back with interest. Safer than stocks, but usually earns less.",
        ),
        quiz=QuizQuestion(
            question="If you buy a stock, what are you actually buying?",
            options=(
                "A loan to the bank",
                "A guaranteed profit",
                "A tiny piece of ownership in a company",
                "Insurance",
            ),
            correct_answer=2,
        ),
    ),
    InvestmentModule(
        id="m3",
        title="The Rollercoaster",
        emoji="🎢",
        description="Why do markets go up and down?",
        xp_reward=150,
        content=(
            "The stock market goes up and down every day. This is called volatility.",
            "Prices change because of supply and demand, and news moves both.",
            "The Golden Rule: Don't panic. Investing is a marathon, not a sprint.",
        ),
        quiz=QuizQuestion(
            question="What should you do if the market drops one day?",
            options=(
                "Panic and sell everything",
                "Buy a boat",
                "Stay calm and think long-term",
                "Hide under the bed",
            ),
            correct_answer=2,
        ),
    ),
)


def get_quest(quest_id: str) -> Optional[Quest]:
    return next((q for q in QUESTS if q.id == quest_id), None)


def get_module(module_id: str) -> Optional[InvestmentModule]:
    return next((m for m in INVESTMENT_MODULES if m.id == module_id), None)

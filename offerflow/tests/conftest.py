"""Pytest configuration and shared fixtures.

Provides reusable test fixtures for:
- Sample offers and user profile
- A scripted model client (no network calls)
- An in-memory credential store with a shared key
- An instant sleep that records retry delays
- Reply builders for the analyze and organize stages
"""

import json
import os
from collections.abc import Callable

# Use litellm's bundled model cost map: the remote fetch fails offline and its
# warning deadlocks litellm's log filter during import under pytest.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from offerflow.agents.stage_base import StageContext
from offerflow.core.cancellation import reset_cancellation_registry
from offerflow.core.credentials import CredentialResolver, InMemoryCredentialStore
from offerflow.core.llm_client import LLMResponse
from offerflow.core.pipeline_logger import reset_logger
from offerflow.pydantic_models import Offer, UserProfile


@pytest.fixture(autouse=True)
def isolated_globals():
    """Fresh cancellation registry and logger for every test."""
    reset_cancellation_registry()
    reset_logger()
    yield
    reset_cancellation_registry()
    reset_logger()


# =============================================================================
# Sample data
# =============================================================================


@pytest.fixture
def sample_offers() -> list[Offer]:
    return [
        Offer(
            id="1",
            title="Sunny 3-room flat",
            description="Renovated flat near the park. " * 30,
            price=450000,
            location="Paris 15e",
            category="Apartment",
            url="https://example.com/1",
            source="web",
            priority=80,
        ),
        Offer(
            id="2",
            title="Family house with garden",
            description="Four bedrooms, quiet street.",
            price="720 000 EUR",
            location="Sceaux",
            category="House",
        ),
        Offer(
            id="3",
            title="Studio near campus",
            description="Ideal first investment.",
            price=10,
            location="Paris 5e",
            category="Studio",
        ),
    ]


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        domain="Real Estate",
        explicit_criteria="Budget 800k, Paris area",
        implicit_context="Family with 2 kids",
    )


# =============================================================================
# Scripted model client
# =============================================================================


class ScriptedModelClient:
    """ModelClient that replays scripted replies in order.

    Each reply is a string (returned as model text), an exception (raised),
    or a zero-argument callable returning either.
    """

    def __init__(self, replies: list):
        self._replies = list(replies)
        self.calls: list[dict] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        api_key: str,
        json_mode: bool = True,
        stage: str = "",
    ) -> LLMResponse:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "model": model,
            "api_key": api_key,
            "stage": stage,
        })
        if not self._replies:
            raise AssertionError(f"No scripted reply left for stage '{stage}'")
        reply = self._replies.pop(0)
        if callable(reply):
            reply = reply()
        if isinstance(reply, BaseException):
            raise reply
        return LLMResponse(raw_content=reply, model=model, prompt_tokens=120, completion_tokens=40)

    @property
    def stages(self) -> list[str]:
        return [call["stage"] for call in self.calls]


class InstantSleep:
    """Awaitable sleep that returns immediately and records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def instant_sleep() -> InstantSleep:
    return InstantSleep()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(shared_keys={"openrouter": "sk-or-shared-1234"})


@pytest.fixture
def make_context(credential_store, instant_sleep) -> Callable[..., tuple[StageContext, ScriptedModelClient]]:
    """Factory: make_context(replies, **overrides) -> (StageContext, client)."""

    def _make(replies: list, **overrides) -> tuple[StageContext, ScriptedModelClient]:
        client = ScriptedModelClient(replies)
        ctx = StageContext(
            client=client,
            resolver=overrides.pop("resolver", CredentialResolver(credential_store)),
            model=overrides.pop("model", "openrouter/test/model"),
            provider=overrides.pop("provider", "openrouter"),
            sleep=instant_sleep,
            **overrides,
        )
        return ctx, client

    return _make


# =============================================================================
# Reply builders
# =============================================================================


def _scored(offer_id: str, rank: int, score: float = 80, **fields) -> dict:
    entry = {
        "id": offer_id,
        "title": fields.pop("title", f"Offer {offer_id}"),
        "description": fields.pop("description", "model paraphrase"),
        "price": fields.pop("price", 1),
        "location": fields.pop("location", "somewhere"),
        "category": fields.pop("category", "misc"),
        "finalScore": score,
        "rank": rank,
        "justification": f"Good match for offer {offer_id}",
        "webInsights": ["Prices are rising"],
        "breakdown": {"relevance": score, "quality": score, "trend": score},
    }
    entry.update(fields)
    return entry


@pytest.fixture
def scored_entry() -> Callable[..., dict]:
    """Build one ScoredOffer dict as the model would return it."""
    return _scored


@pytest.fixture
def analysis_reply() -> Callable[..., str]:
    """Build an analyze-stage reply: analysis_reply([scored dicts], summary)."""

    def _reply(top_offers: list[dict], summary: str = "Tight market.") -> str:
        return json.dumps({"topOffers": top_offers, "marketSummary": summary})

    return _reply


@pytest.fixture
def organize_reply() -> Callable[..., str]:
    """Build an organize-stage reply: organize_reply("kanban", {"Top": ["1"]})."""
    keys = {"timeline": ("timeline", "date"), "grid": ("categories", "name"), "kanban": ("kanban", "status")}

    def _reply(template: str, buckets: dict[str, list], group_by: str = "category") -> str:
        bucket_key, label_key = keys[template]
        return json.dumps({
            bucket_key: [
                {label_key: label, "offers": [{"id": i} if isinstance(i, str) else i for i in ids]}
                for label, ids in buckets.items()
            ],
            "groupedBy": group_by,
        })

    return _reply


@pytest.fixture
def fetch_reply() -> Callable[..., str]:
    """Build a fetch-stage reply from (id, source, priority) tuples."""

    def _reply(entries: list[tuple[str, str, float]], wrap: bool = False) -> str:
        offers = [
            {
                "id": offer_id,
                "title": f"Listing {offer_id}",
                "description": "details",
                "price": "1000",
                "location": "Lyon",
                "category": "Flat",
                "url": f"https://listings.example/{offer_id}" if source == "web" else "",
                "source": source,
                "priority": priority,
            }
            for offer_id, source, priority in entries
        ]
        return json.dumps({"offers": offers} if wrap else offers)

    return _reply

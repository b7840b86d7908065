from __future__ import annotations

from labforge.catalog.registry import (
    ActionCost,
    ActionDefinition,
    ActionRewards,
    Catalog,
    ModelBlueprint,
    ResearchNode,
)


_MIN = 60_000


def _actions() -> list[ActionDefinition]:
    return [
        ActionDefinition(
            id="job_research_literature",
            name="Literature Review",
            category="research",
            description="Read recent papers to earn Research Points.",
            duration_ms=3 * _MIN,
            cost=ActionCost(cash=150),
            rewards=ActionRewards(xp=40, rp=60),
        ),
        ActionDefinition(
            id="job_train_tts_3b",
            name="3B TTS",
            category="training",
            description="Train a small text-to-speech model.",
            duration_ms=5 * _MIN,
            cost=ActionCost(cash=500, compute=1),
            rewards=ActionRewards(xp=80, rp=120),
            prerequisite_node_ids=("rn_bp_unlock_tts_3b",),
            cancellable=False,
            trains=ModelBlueprint("bp_tts_3b", "tts", 40, 70),
        ),
        ActionDefinition(
            id="job_train_vlm_7b",
            name="7B VLM",
            category="training",
            description="Train a vision-language model.",
            duration_ms=12 * _MIN,
            cost=ActionCost(cash=1200, compute=1),
            rewards=ActionRewards(xp=140, rp=260),
            min_level=2,
            prerequisite_node_ids=("rn_bp_unlock_vlm_7b",),
            cancellable=False,
            trains=ModelBlueprint("bp_vlm_7b", "vlm", 55, 85),
        ),
        ActionDefinition(
            id="job_train_llm_3b",
            name="3B LLM",
            category="training",
            description="Train a small language model.",
            duration_ms=8 * _MIN,
            cost=ActionCost(cash=900, compute=1),
            rewards=ActionRewards(xp=120, rp=200),
            min_level=3,
            prerequisite_node_ids=("rn_bp_unlock_llm_3b",),
            cancellable=False,
            trains=ModelBlueprint("bp_llm_3b", "llm", 45, 75),
        ),
        ActionDefinition(
            id="job_train_llm_17b",
            name="17B LLM",
            category="training",
            description="Train a large language model.",
            duration_ms=20 * _MIN,
            cost=ActionCost(cash=3000, compute=2),
            rewards=ActionRewards(xp=260, rp=480),
            min_level=7,
            prerequisite_node_ids=("rn_bp_unlock_llm_17b",),
            cancellable=False,
            trains=ModelBlueprint("bp_llm_17b", "llm", 65, 95),
        ),
        ActionDefinition(
            id="job_contract_blog_basic",
            name="Blog Writing Contract",
            category="contract",
            description="Use your LLM to write blog posts for a client.",
            duration_ms=4 * _MIN,
            cost=ActionCost(compute=1),
            rewards=ActionRewards(xp=60, cash=450),
            prerequisite_node_ids=("rn_cap_contracts_basic",),
            requires_model_type="llm",
        ),
        ActionDefinition(
            id="job_contract_voice_pack",
            name="Voice Pack Contract",
            category="contract",
            description="Produce a voice pack with your TTS model.",
            duration_ms=4 * _MIN,
            cost=ActionCost(compute=1),
            rewards=ActionRewards(xp=70, cash=520),
            min_level=2,
            prerequisite_node_ids=("rn_cap_contracts_voice",),
            requires_model_type="tts",
        ),
        ActionDefinition(
            id="job_contract_image_qa",
            name="Image QA Contract",
            category="contract",
            description="Label and QA an image dataset with your VLM.",
            duration_ms=6 * _MIN,
            cost=ActionCost(compute=1),
            rewards=ActionRewards(xp=90, cash=700),
            min_level=3,
            prerequisite_node_ids=("rn_cap_contracts_vision",),
            requires_model_type="vlm",
        ),
        ActionDefinition(
            id="hire_junior_researcher",
            name="Junior Researcher",
            category="hiring",
            description="Bring on a junior researcher: +1 task slot and faster training while on staff.",
            duration_ms=10 * _MIN,
            cost=ActionCost(cash=800),
            rewards=ActionRewards(xp=30),
            refund_on_cancel=True,
            staff_required=1,
        ),
    ]


def _nodes() -> list[ResearchNode]:
    return [
        ResearchNode(
            id="rn_cap_contracts_basic",
            name="Basic Contracts",
            category="capability",
            duration_ms=0,
            unlock_type="job",
            unlock_target="job_contract_blog_basic",
            unlock_description="Take on blog writing contracts.",
        ),
        ResearchNode(
            id="rn_bp_unlock_tts_3b",
            name="3B TTS Blueprint",
            category="model",
            duration_ms=0,
            unlock_type="blueprint",
            unlock_target="bp_tts_3b",
            unlock_description="Train 3B TTS models.",
        ),
        ResearchNode(
            id="rn_perk_research_speed_1",
            name="Efficient Pipelines",
            category="perk",
            duration_ms=2 * _MIN,
            cost=ActionCost(rp=120),
            unlock_description="+10% task speed.",
            perk_type="speed",
            perk_value=10,
        ),
        ResearchNode(
            id="rn_bp_unlock_vlm_7b",
            name="7B VLM Blueprint",
            category="model",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=250),
            min_level=2,
            unlock_type="blueprint",
            unlock_target="bp_vlm_7b",
            unlock_description="Train 7B vision-language models.",
        ),
        ResearchNode(
            id="rn_cap_contracts_voice",
            name="Voice Contracts",
            category="capability",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=200),
            min_level=2,
            unlock_type="job",
            unlock_target="job_contract_voice_pack",
            unlock_description="Take on voice pack contracts.",
        ),
        ResearchNode(
            id="rn_cap_contracts_vision",
            name="Vision Contracts",
            category="capability",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=220),
            min_level=3,
            unlock_type="job",
            unlock_target="job_contract_image_qa",
            unlock_description="Take on image QA contracts.",
        ),
        ResearchNode(
            id="rn_bp_unlock_llm_3b",
            name="3B LLM Blueprint",
            category="model",
            duration_ms=4 * _MIN,
            cost=ActionCost(rp=350),
            min_level=3,
            unlock_type="blueprint",
            unlock_target="bp_llm_3b",
            unlock_description="Train 3B language models.",
        ),
        ResearchNode(
            id="rn_perk_money_multiplier_1",
            name="Client Relations",
            category="perk",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=180),
            min_level=3,
            unlock_description="+10% cash from tasks.",
            perk_type="money_multiplier",
            perk_value=0.1,
        ),
        ResearchNode(
            id="rn_cap_model_publishing",
            name="Model Publishing",
            category="capability",
            duration_ms=4 * _MIN,
            cost=ActionCost(rp=250),
            min_level=4,
            unlock_type="system_flag",
            unlock_target="publishing",
            unlock_description="Publish models to the public leaderboards.",
        ),
        ResearchNode(
            id="rn_cap_model_api_income",
            name="Model API Income",
            category="revenue",
            duration_ms=5 * _MIN,
            cost=ActionCost(rp=350),
            min_level=5,
            unlock_type="system_flag",
            unlock_target="api_income",
            unlock_description="Earn passive income from your best model.",
        ),
        ResearchNode(
            id="rn_perk_research_speed_2",
            name="Distributed Training",
            category="perk",
            duration_ms=5 * _MIN,
            cost=ActionCost(rp=400),
            min_level=5,
            prerequisite_node_ids=("rn_perk_research_speed_1",),
            unlock_description="+15% task speed.",
            perk_type="speed",
            perk_value=15,
        ),
        ResearchNode(
            id="rn_bp_unlock_llm_17b",
            name="17B LLM Blueprint",
            category="model",
            duration_ms=8 * _MIN,
            cost=ActionCost(rp=900),
            min_level=7,
            prerequisite_node_ids=("rn_bp_unlock_llm_3b",),
            unlock_type="blueprint",
            unlock_target="bp_llm_17b",
            unlock_description="Train 17B language models.",
        ),
        ResearchNode(
            id="rn_attr_queue_1",
            name="Task Scheduler",
            category="attributes",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=300),
            min_level=2,
            unlock_description="+1 queue slot.",
            perk_type="queue_slots",
            perk_value=1,
        ),
        ResearchNode(
            id="rn_attr_staff_1",
            name="Bigger Office",
            category="attributes",
            duration_ms=3 * _MIN,
            cost=ActionCost(rp=250),
            min_level=3,
            unlock_description="+1 staff capacity.",
            perk_type="staff_capacity",
            perk_value=1,
        ),
        ResearchNode(
            id="rn_attr_compute_1",
            name="GPU Rack",
            category="attributes",
            duration_ms=4 * _MIN,
            cost=ActionCost(rp=400),
            min_level=4,
            unlock_description="+1 compute unit.",
            perk_type="compute_units",
            perk_value=1,
        ),
        ResearchNode(
            id="rn_attr_queue_2",
            name="Job Orchestrator",
            category="attributes",
            duration_ms=5 * _MIN,
            cost=ActionCost(rp=600),
            min_level=5,
            prerequisite_node_ids=("rn_attr_queue_1",),
            unlock_description="+1 queue slot.",
            perk_type="queue_slots",
            perk_value=1,
        ),
    ]


def default_catalog() -> Catalog:
    """Built-in catalog used when no catalog files are present."""

    return Catalog.from_entries([*_actions(), *_nodes()])

"""
Trinity Multi-Agent Orchestrator

Puts one conversation to three specialized LLM agents and blends their
answers into a single response:
- Analytical Agent: Logic, structure and evidence-based conclusions
- Creative Agent: Alternative perspectives and novel ideas
- Factual Agent: Accuracy, verification and sources
- Orchestrator: Resolves conflicts, blends answers, attributes contributions

Key Features:
- Parallel, sequential and hybrid execution modes
- Four blending strategies (weighted merge, best of three, synthesis, hierarchical)
- Per-agent timeouts with single-agent fallback
- Streaming with per-agent events and a blended final answer
- Presets and layered configuration overrides
"""

__version__ = "1.0.0"
__author__ = "Trinity Team"

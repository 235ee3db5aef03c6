"""Optional semantic re-ranking of lexical search candidates."""

from doccache.ranking.base import Ranker, Ranking, build_rerank_prompt, extract_json_array, parse_rankings
from doccache.ranking.command import CommandRanker
from doccache.ranking.ollama import OllamaRanker, OllamaRankerConfig

__all__ = [
    "CommandRanker",
    "OllamaRanker",
    "OllamaRankerConfig",
    "Ranker",
    "Ranking",
    "build_rerank_prompt",
    "extract_json_array",
    "parse_rankings",
]

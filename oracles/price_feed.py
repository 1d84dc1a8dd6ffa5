from typing import Dict, Optional
from dataclasses import dataclass

from smart_contracts.engine import SmartContract

@dataclass(frozen=True)
class RoundData:
    """One reported price round"""
    round_id: int
    answer: int
    started_at: int
    updated_at: int
    answered_in_round: int

    @property
    def is_empty(self) -> bool:
        return self.round_id == 0 and self.updated_at == 0

EMPTY_ROUND = RoundData(round_id=0, answer=0, started_at=0, updated_at=0, answered_in_round=0)

class PriceFeed(SmartContract):
    """Aggregator-style USD price feed for one asset.

    Stands in for the external oracle network: the owner pushes answers and
    consumers read ``latest_round_data``. Nothing here validates the answer;
    that is the consumer's job.
    """

    def __init__(self, decimals: int = 8, description: str = "", owner: str = ""):
        super().__init__()

        self.decimals = decimals
        self.description = description
        self.owner = owner

        self.rounds: Dict[int, RoundData] = {}
        self.latest_round_id = 0

    def update_answer(self, answer: int) -> bool:
        """Publish a new round stamped with the current block time"""
        if self._get_caller() != self.owner:
            return False

        now = self._now()
        round_id = self.latest_round_id + 1
        self._store_round(RoundData(
            round_id=round_id,
            answer=answer,
            started_at=now,
            updated_at=now,
            answered_in_round=round_id
        ))
        return True

    def update_round_data(self, round_id: int, answer: int, updated_at: int,
                          started_at: Optional[int] = None,
                          answered_in_round: Optional[int] = None) -> bool:
        """Publish a round with explicit fields, as a misbehaving feed might"""
        if self._get_caller() != self.owner:
            return False

        self._store_round(RoundData(
            round_id=round_id,
            answer=answer,
            started_at=updated_at if started_at is None else started_at,
            updated_at=updated_at,
            answered_in_round=round_id if answered_in_round is None else answered_in_round
        ))
        return True

    def latest_round_data(self) -> RoundData:
        return self.rounds.get(self.latest_round_id, EMPTY_ROUND)

    def get_round_data(self, round_id: int) -> RoundData:
        return self.rounds.get(round_id, EMPTY_ROUND)

    def get_decimals(self) -> int:
        return self.decimals

    def get_description(self) -> str:
        return self.description

    def _store_round(self, round_data: RoundData):
        self.rounds[round_data.round_id] = round_data
        self.latest_round_id = max(self.latest_round_id, round_data.round_id)

        self._emit_event('AnswerUpdated', {
            'round_id': round_data.round_id,
            'answer': round_data.answer,
            'updated_at': round_data.updated_at
        })

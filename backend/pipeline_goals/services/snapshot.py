from typing import Any, List

from pipeline_goals.services.opportunity_valuator import read_field


class InvalidSnapshotError(ValueError):
    """Snapshot estruturalmente inválido (erro de programação no chamador)"""


def ensure_valid_snapshot(opportunities: Any) -> List[Any]:
    """
    Valida o snapshot de oportunidades antes da agregação.

    Aceita list ou tuple; ids duplicados são rejeitados. Registros sem id
    (ainda não persistidos) não participam da checagem de unicidade.
    """
    if not isinstance(opportunities, (list, tuple)):
        raise InvalidSnapshotError(
            f"Snapshot de oportunidades deve ser uma lista, recebido {type(opportunities).__name__}"
        )

    seen = set()
    for opportunity in opportunities:
        opportunity_id = read_field(opportunity, "id")
        if opportunity_id is None:
            continue
        if opportunity_id in seen:
            raise InvalidSnapshotError(f"Oportunidade duplicada no snapshot: id={opportunity_id}")
        seen.add(opportunity_id)
    return list(opportunities)

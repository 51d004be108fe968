from __future__ import annotations

STEP_ENTE = "ente"
STEP_IMPORTO = "importo"
STEP_IBAN = "iban"
STEP_SCADENZA = "scadenza"
STEP_DONE = "done"

STEPS = (STEP_ENTE, STEP_IMPORTO, STEP_IBAN, STEP_SCADENZA)


def first_step() -> str:
    return STEPS[0]


def next_step(current: str) -> str:
    if current not in STEPS:
        raise ValueError(f"unknown step: {current}")
    index = STEPS.index(current)
    if index + 1 >= len(STEPS):
        return STEP_DONE
    return STEPS[index + 1]


def is_forward(current: str, target: str) -> bool:
    if current == target:
        return True
    if target == STEP_DONE:
        return current in STEPS
    if current not in STEPS or target not in STEPS:
        return False
    return STEPS.index(target) > STEPS.index(current)

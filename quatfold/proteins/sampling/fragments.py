"""
Fragment assembly from an idealized 3-mer / 9-mer library.

The chain is tiled left to right. At each window every library fragment is
scored by its Ramachandran basin energy for the residues it would cover plus
a penalty for each residue whose SS prior disagrees with the fragment class;
one of the `top_k` best is drawn with softmax weights exp(-score / T),
jittered by a small Gaussian and written into the angle array.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .._fold_base import AA_1to3, normalize_sequence
from ..backbone_builder import extended_angles
from ..force_field import ramachandran_energy
from ..secondary_structure_predictor import validate_ss
from .base import SampledConformation, wrap_angles

METHOD = "fragment"
SS_MISMATCH_PENALTY = 2.0

# Fragment class → SS labels it agrees with.
CLASS_SS = {"helix": "H", "sheet": "E", "turn": "TC", "loop": "CT"}


@dataclass(frozen=True)
class Fragment:
    name: str
    kind: str
    angles: Tuple[Tuple[float, float], ...]

    def __len__(self) -> int:
        return len(self.angles)

    def as_array(self) -> np.ndarray:
        return np.array(self.angles, dtype=float)


def _repeat(phi: float, psi: float, n: int) -> Tuple[Tuple[float, float], ...]:
    return tuple((phi, psi) for _ in range(n))


def build_fragment_library() -> List[Fragment]:
    """Idealized helix / sheet / turn / loop 3-mers and helix / sheet 9-mers."""
    lib = [Fragment("alpha_helix", "helix", _repeat(-60.0, -45.0, 3))]
    for d in (-10.0, -5.0, 5.0, 10.0):
        lib.append(Fragment(f"alpha_helix_{d:+.0f}", "helix", _repeat(-60.0 + d, -45.0 + d, 3)))
    lib.append(Fragment("beta_sheet", "sheet", _repeat(-120.0, 120.0, 3)))
    for d in (-15.0, -10.0, 10.0, 15.0):
        lib.append(Fragment(f"beta_sheet_{d:+.0f}", "sheet", _repeat(-120.0 + d, 120.0 + d, 3)))
    lib.append(Fragment("type_I_turn", "turn", ((-60.0, -30.0), (-90.0, 0.0), (-60.0, -30.0))))
    lib.append(Fragment("type_II_turn", "turn", ((-60.0, 120.0), (80.0, 0.0), (-60.0, 120.0))))
    lib.append(Fragment("extended_loop", "loop", ((-120.0, 120.0), (-100.0, 100.0), (-120.0, 120.0))))
    lib.append(Fragment("compact_loop", "loop", ((-80.0, 80.0), (-70.0, 70.0), (-80.0, 80.0))))
    lib.append(Fragment("alpha_helix_9", "helix", _repeat(-60.0, -45.0, 9)))
    lib.append(Fragment("beta_sheet_9", "sheet", _repeat(-120.0, 120.0, 9)))
    return lib


FRAGMENT_LIBRARY: Tuple[Fragment, ...] = tuple(build_fragment_library())


def score_fragment(frag: Fragment, res_names: Sequence[str], ss: Optional[str] = None) -> float:
    """Basin energy over the covered residues + SS mismatch penalties."""
    e = 0.0
    for k, (phi, psi) in enumerate(frag.angles[: len(res_names)]):
        e += ramachandran_energy(phi, psi, res_names[k])
        if ss is not None and ss[k] not in CLASS_SS[frag.kind]:
            e += SS_MISMATCH_PENALTY
    return e


def pick_fragment(
    candidates: Sequence[Fragment],
    res_names: Sequence[str],
    rng: np.random.Generator,
    ss: Optional[str] = None,
    top_k: int = 5,
    temperature: float = 1.0,
) -> Fragment:
    """Softmax draw among the top_k lowest-scoring fragments."""
    scores = np.array([score_fragment(f, res_names, ss) for f in candidates])
    order = np.argsort(scores, kind="stable")[:top_k]
    s = scores[order]
    w = np.exp(-(s - s.min()) / max(temperature, 1e-9))
    return candidates[int(order[rng.choice(len(order), p=w / w.sum())])]


def fragment_assembly(
    sequence: str,
    n_samples: int,
    rng: np.random.Generator,
    ss: Optional[str] = None,
    library: Sequence[Fragment] = FRAGMENT_LIBRARY,
    use_nine_mers: bool = True,
    nine_mer_fraction: float = 0.3,
    top_k: int = 5,
    jitter_deg: float = 5.0,
    **priors,
) -> List[SampledConformation]:
    """n_samples angle sets assembled from library fragments."""
    seq = normalize_sequence(sequence)
    n = len(seq)
    if ss:
        ss = validate_ss(ss, n)
    names = [AA_1to3[a] for a in seq]
    threes = [f for f in library if len(f) == 3]
    nines = [f for f in library if len(f) == 9]
    out = []
    for _ in range(max(0, n_samples)):
        angles = extended_angles(n)
        pos = 0
        while pos < n:
            remaining = n - pos
            if use_nine_mers and nines and remaining >= 9 and rng.random() < nine_mer_fraction:
                pool, width = nines, 9
            else:
                pool, width = threes, min(3, n)
                pos = min(pos, n - width)
            window_ss = ss[pos:pos + width] if ss else None
            frag = pick_fragment(pool, names[pos:pos + width], rng, window_ss, top_k=top_k)
            block = frag.as_array()[:width] + rng.normal(0.0, jitter_deg, size=(width, 2))
            angles[pos:pos + width] = block
            pos += width
        out.append(SampledConformation(angles=wrap_angles(angles), method=METHOD))
    return out

# scorers.py — reconstructability scores from per-sample ray sets
# A scorer maps a RaySet (+ optional sample normals) to one non-negative value per sample.
# Scorers are registered by name so the pairwise curve can be swapped from the config.

from __future__ import annotations
from typing import Callable, Dict, Optional
import math
import numpy as np

from observations import RaySet

MIN_SCORE = 0.0

_SCORERS: Dict[str, Callable] = {}


def register_scorer(name: str):
    def deco(fn):
        _SCORERS[name] = fn
        return fn
    return deco


def available_scorers():
    return sorted(_SCORERS)


def get_scorer(name: str, top_k_pairs: Optional[int] = None, chunk: int = 8192, **params):
    """
    Returns scorer(rays, normals=None) -> (n,) float64.
    `params` go to the pair function; `top_k_pairs` keeps only the best pairs per sample.
    """
    if name not in _SCORERS:
        raise ValueError(f"unknown scorer: {name} (available: {', '.join(available_scorers())})")
    if top_k_pairs is not None and int(top_k_pairs) < 1:
        raise ValueError(f"top_k_pairs must be >= 1 or None, got {top_k_pairs}")
    pair_fn = _SCORERS[name]

    def scorer(rays: RaySet, normals: Optional[np.ndarray] = None) -> np.ndarray:
        return score_pairs(rays, normals, pair_fn, params, top_k_pairs=top_k_pairs, chunk=chunk)

    scorer.name = name
    return scorer


def score_pairs(rays: RaySet, normals, pair_fn, params, top_k_pairs=None, chunk=8192) -> np.ndarray:
    n, K = rays.valid.shape
    out = np.full(n, MIN_SCORE, dtype=np.float64)
    upper = np.triu(np.ones((K, K), dtype=bool), k=1)

    for s in range(0, n, chunk):
        sl = slice(s, s + chunk)
        if not np.any(rays.counts[sl] >= 2):
            continue
        d = rays.dirs[sl].astype(np.float64)
        v = rays.valid[sl]
        cos_pair = np.clip(np.einsum("nik,njk->nij", d, d), -1.0, 1.0)
        alpha = np.arccos(cos_pair)

        dist = rays.dists[sl].astype(np.float64)
        dmax_pair = np.maximum(dist[:, :, None], dist[:, None, :])
        if normals is not None:
            inc = np.clip(np.einsum("nk,nik->ni", normals[sl].astype(np.float64), d), 0.0, 1.0)
            inc_pair = np.minimum(inc[:, :, None], inc[:, None, :])
        else:
            inc_pair = np.ones_like(alpha)

        q = pair_fn(alpha, dmax_pair, inc_pair, **params)
        q = np.where(upper[None] & v[:, :, None] & v[:, None, :], q, 0.0)
        q = q.reshape(len(q), -1)
        if top_k_pairs is not None and top_k_pairs < q.shape[1]:
            q = np.sort(q, axis=1)[:, -int(top_k_pairs):]
        out[sl] = np.maximum(q.sum(axis=1), MIN_SCORE)

    # fewer than two rays: no triangulation
    out[rays.counts < 2] = MIN_SCORE
    return out

# -------------------- pair functions --------------------

def _sigmoid(x):
    return 1.0 / (1.0 + np.exp(-x))


@register_scorer("smith")
def smith_pair(alpha, dmax, incidence,
               k1=32.0, alpha1=math.pi / 16, k3=8.0, alpha3=math.pi / 4,
               max_distance=80.0, use_incidence=True):
    """
    Pairwise triangulation quality:
      w1 rises past alpha1 (near-parallel rays give poor depth),
      w3 falls past alpha3 (wide baselines hurt matching),
      w2 decays with the farther camera's distance,
      cos of the worse incidence angle against the surface normal.
    """
    w1 = _sigmoid(k1 * (alpha - alpha1))
    w3 = 1.0 - _sigmoid(k3 * (alpha - alpha3))
    w2 = 1.0 - np.minimum(dmax / float(max_distance), 1.0)
    q = w1 * w2 * w3
    if use_incidence:
        q = q * incidence
    return q


@register_scorer("gaussian")
def gaussian_pair(alpha, dmax, incidence, ideal_deg=20.0, sigma_deg=10.0, use_incidence=False):
    a0 = math.radians(ideal_deg); sg = math.radians(sigma_deg)
    q = np.exp(-((alpha - a0) ** 2) / (2.0 * sg * sg))
    if use_incidence:
        q = q * incidence
    return q

# -------------------- target weighting --------------------

def target_weighted(raw, target_quality: float = 3.0) -> np.ndarray:
    """Saturating rescale to [0, 1]: min(raw, target) / target."""
    t = float(target_quality)
    if not t > 0:
        raise ValueError("target_quality must be > 0")
    raw = np.asarray(raw, dtype=np.float64)
    return np.minimum(np.maximum(raw, MIN_SCORE), t) / t

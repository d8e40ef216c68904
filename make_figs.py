# make_figs.py — rank evaluated trajectories from the summary log written by eval_recon.py
#   (left)  mean weighted reconstructability per trajectory, best first, min/max as error bars
#   (right) path length vs mean weighted score (cost / quality trade-off)

import os, argparse
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

# --------------------------- IO / filtering ---------------------------

NUMERIC = ["cameras", "skipped", "samples", "path_length", "target_quality",
           "mean_weighted", "min_weighted", "max_weighted", "mean_weighted_seq", "mean_observations"]

def load_summary(csv_path, scorer_filter=None, target_filter=None):
    df = pd.read_csv(csv_path)
    if "trajectory" not in df.columns or "mean_weighted" not in df.columns:
        raise ValueError("CSV must contain 'trajectory' and 'mean_weighted' columns.")

    # normalize columns that sometimes arrive as strings
    for c in NUMERIC:
        if c in df.columns:
            df[c] = pd.to_numeric(df[c], errors="coerce")
    df = df.dropna(subset=["mean_weighted"])

    if scorer_filter is not None and str(scorer_filter).lower() != "all":
        df = df[df["scorer"].astype(str).str.lower() == str(scorer_filter).lower()]
    if target_filter is not None:
        df = df[np.isclose(df["target_quality"], float(target_filter))]

    # a trajectory evaluated several times keeps its latest row
    df = df.drop_duplicates(subset=["trajectory", "scorer", "target_quality"], keep="last")
    return df.reset_index(drop=True)

def rank_trajectories(df):
    return df.sort_values("mean_weighted", ascending=False).reset_index(drop=True)

# --------------------------- plotting ---------------------------

def plot_ranking(df, out_png, title_suffix=""):
    if df.empty:
        raise ValueError("Filtered DataFrame is empty — check --scorer / --target filters and CSV path.")
    ranked = rank_trajectories(df)

    fig = plt.figure(figsize=(13, 5.5), dpi=140)
    gs  = GridSpec(nrows=1, ncols=2, width_ratios=[1.6, 1], wspace=0.25)
    ax_rank = fig.add_subplot(gs[0, 0])
    ax_cost = fig.add_subplot(gs[0, 1])

    # --- Left: ranking
    x = np.arange(len(ranked))
    y = ranked["mean_weighted"].to_numpy()
    lo = y - ranked["min_weighted"].to_numpy()
    hi = ranked["max_weighted"].to_numpy() - y
    ax_rank.bar(x, y, yerr=[lo, hi], capsize=3, color="#1f77b4")
    ax_rank.set_xticks(x)
    ax_rank.set_xticklabels(ranked["trajectory"].astype(str).tolist(), rotation=45, ha="right")
    ax_rank.set_ylim(0, 1.05)
    ax_rank.set_ylabel("Mean weighted score")
    ax_rank.set_title("Trajectory ranking (min/max as bars)")
    ax_rank.grid(True, axis="y", alpha=0.3)
    for i, val in enumerate(y):
        ax_rank.text(i, min(val + 0.02, 1.0), f"{val:.2f}", ha="center", va="bottom", fontsize=8)

    # --- Right: path length vs score
    if "path_length" in ranked.columns:
        ax_cost.scatter(ranked["path_length"], y, s=30, color="#2ca02c")
        for _, row in ranked.iterrows():
            ax_cost.annotate(str(row["trajectory"]), (row["path_length"], row["mean_weighted"]),
                             fontsize=7, xytext=(3, 3), textcoords="offset points")
    ax_cost.set_xlabel("Path length")
    ax_cost.set_ylabel("Mean weighted score")
    ax_cost.set_title("Cost vs. quality")
    ax_cost.grid(True, alpha=0.3)

    fig.suptitle(f"Reconstructability — {title_suffix}", y=0.99, fontsize=13)
    d = os.path.dirname(out_png)
    if d:
        os.makedirs(d, exist_ok=True)
    fig.savefig(out_png, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {out_png}")

# --------------------------- CLI ---------------------------

if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--csv", required=True, help="summary CSV from eval_recon.py --summary-csv")
    ap.add_argument("--scorer", default="ALL", help="Filter scorer name (or 'ALL')")
    ap.add_argument("--target", type=float, default=None, help="Filter target quality")
    ap.add_argument("--out", default="experiments/results/trajectory_ranking.png")
    args = ap.parse_args()

    df = load_summary(args.csv, scorer_filter=args.scorer, target_filter=args.target)
    print(rank_trajectories(df)[["trajectory", "mean_weighted", "path_length", "cameras"]].to_string(index=False))
    suffix = f"scorer={args.scorer}, target={args.target if args.target is not None else 'any'}"
    plot_ranking(df, args.out, title_suffix=suffix)

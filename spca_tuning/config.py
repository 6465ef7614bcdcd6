# config.py - Default parameters for sparse PCA penalty tuning
# Constructor keyword arguments override these values

# ── Reproducibility ────────────────────────────────────────────────────────────
RANDOM_SEED = 42                # Passed explicitly to every solver

# ── Sparse PCA solver parameters ──────────────────────────────────────────────
SPCA_MAX_ITER = 1000
SPCA_TOL = 1e-6
SPCA_RIDGE_ALPHA = 0.01         # Ridge term used when projecting onto components
SPCA_METHOD = "lars"            # "lars" or "cd"

# Elastic-net SPCA (alternating regression form)
ENET_RIDGE = 1e-6               # Quadratic penalty lambda_2
ENET_MAX_ITER = 200             # Outer alternating iterations
ENET_TOL = 1e-6                 # Relative change in loadings between iterations

# ── Scoring ───────────────────────────────────────────────────────────────────
ZERO_TOLERANCE = 0.0            # |loading| <= ZERO_TOLERANCE counts as zero
TIE_TOLERANCE = 1e-9            # IS scores closer than this are tied
PEV_SUM_TOLERANCE = 1e-6        # Relative tolerance on sum(PEV) == 1

# ── Grid failure handling ─────────────────────────────────────────────────────
FAILURE_POLICIES = ("raise", "sentinel")
DEFAULT_FAILURE_POLICY = "raise"

# ── Data requirements ─────────────────────────────────────────────────────────
MIN_SAMPLES = 2
MIN_FEATURES = 1

# ── Command line / reporting ──────────────────────────────────────────────────
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
RESULT_COLUMNS = [
    "penalty", "is_score", "pev_pca", "pev_sparse",
    "sparsity_ratio", "n_zero", "failed", "error",
]

# ── Visualization parameters (examples/) ──────────────────────────────────────
FIGURE_DPI = 300
FIGURE_FORMAT = ["png"]
FIGSIZE_WIDE = (14, 6)

import warnings

# Suppress deprecation warnings emitted by optional backends pulled in by audioread
for dep_module in ("aifc", "audioop", "sunau"):
    warnings.filterwarnings(
        "ignore",
        message=f".*'{dep_module}'.*deprecated.*",
        category=DeprecationWarning,
        module="audioread.rawread",
    )

# The loader falls back to scipy for files librosa rejects; tests exercise that path on purpose.
warnings.filterwarnings(
    "ignore",
    message=r"librosa failed on .*",
    category=UserWarning,
)

# %%
#|export
from dataclasses import dataclass
from pathlib import Path

@dataclass
class Config:
    mbtiles_file: Path
    create_grids: bool = False
    create_index: bool = True
    log_level: str = "WARNING"

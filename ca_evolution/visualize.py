"""Static image export for grids, rule runs and population genotypes."""

import numpy as np
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image

from .automaton import CellularAutomaton, Rule

DEAD_COLOR = 0
LIVE_COLOR = 255


def render_grid_fast(grid: np.ndarray, cell_size: int = 2) -> np.ndarray:
    """Vectorized grid rendering to an RGB array."""
    h, w = grid.shape

    # Create base image with dead cell color
    img = np.full((h * cell_size, w * cell_size, 3), DEAD_COLOR, dtype=np.uint8)

    # Upscale grid using repeat
    upscaled = np.repeat(np.repeat(grid, cell_size, axis=0), cell_size, axis=1)

    # Set live cells to white
    img[upscaled == 1] = LIVE_COLOR

    return img


def save_image(grid: np.ndarray, filepath: str, cell_size: int = 2):
    """Save grid state as PNG image."""
    Image.fromarray(render_grid_fast(grid, cell_size)).save(filepath)


def save_animation(
    history: List[np.ndarray],
    filepath: str,
    cell_size: int = 2,
    duration: int = 100,
    loop: int = 0,
):
    """Save simulation history as animated GIF."""
    frames = [Image.fromarray(render_grid_fast(grid, cell_size)) for grid in history]
    if frames:
        frames[0].save(
            filepath,
            save_all=True,
            append_images=frames[1:],
            duration=duration,
            loop=loop,
        )


def save_genotype_map(rules: Sequence[Rule], filepath: str, cell_size: int = 1):
    """Render a population as one row of 512 genes per rule."""
    genes = np.array([rule.bits for rule in rules], dtype=np.uint8)
    Image.fromarray(render_grid_fast(genes, cell_size)).save(filepath)


def visualize_rule(
    rule: Rule,
    width: int = 89,
    height: int = 89,
    steps: int = 50,
    initial_density: float = 0.5,
    output_dir: str = "output",
    name: Optional[str] = None,
    save_gif: bool = True,
    cell_size: int = 2,
    seed: Optional[int] = None,
) -> Tuple[str, str]:
    """
    Run a rule from a random grid and save the run.

    Returns:
        Tuple of (gif_path, final_png_path); gif_path is "" when save_gif is False
    """
    rng = np.random.default_rng(seed)
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    name = name or f"rule_{rule.to_string()[:12]}"

    ca = CellularAutomaton(width=width, height=height, rule=rule)
    ca.randomize(density=initial_density, rng=rng)
    history = ca.run(steps, record_history=True)

    gif_path = ""
    if save_gif:
        gif_path = str(output_path / f"{name}.gif")
        save_animation(history, gif_path, cell_size=cell_size)

    final_path = str(output_path / f"{name}_final.png")
    save_image(ca.grid, final_path, cell_size=cell_size)

    return gif_path, final_path

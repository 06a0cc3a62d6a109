"""
Result Plots
============

Side-by-side input/output figure plus the diffusion coefficient field of the
final iteration.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np


def plot_comparison(
    original: np.ndarray,
    filtered: np.ndarray,
    output_path: Union[str, Path],
    coefficients: Optional[np.ndarray] = None,
    title: str = 'SRAD',
) -> Path:
    """
    Save a comparison figure.

    Parameters
    ----------
    original, filtered : np.ndarray (rows, cols)
        Intensities in [0, 255]
    output_path : str or Path
        Figure file
    coefficients : np.ndarray (rows, cols), optional
        Diffusion coefficient field to show in a third panel
    title : str
        Figure title
    """
    n_panels = 2 if coefficients is None else 3
    fig, axes = plt.subplots(1, n_panels, figsize=(5 * n_panels, 5))

    axes[0].imshow(original, cmap='gray', vmin=0, vmax=255)
    axes[0].set_title(f'Input (mean {np.mean(original):.1f})')

    axes[1].imshow(filtered, cmap='gray', vmin=0, vmax=255)
    axes[1].set_title(f'Filtered (mean {np.mean(filtered):.1f})')

    if coefficients is not None:
        im = axes[2].imshow(coefficients, cmap='viridis', vmin=0, vmax=1)
        axes[2].set_title('Diffusion coefficient c')
        fig.colorbar(im, ax=axes[2], fraction=0.046, pad=0.04)

    for ax in axes:
        ax.axis('off')

    fig.suptitle(title, fontsize=14)
    plt.tight_layout()

    output_path = Path(output_path)
    fig.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return output_path

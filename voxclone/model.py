"""
Per-profile acoustic model.

Feed-forward regression from a 128-dim feature vector to an 80-bin
mel-like acoustic vector in [-1, 1]:

    128 -> 256 -> 512 -> 512 -> 256 -> 80   (ReLU, tanh output)
"""

import torch
import torch.nn as nn
from typing import Sequence


class AcousticModel(nn.Module):
    """Dense regression network."""

    def __init__(
        self,
        input_size: int = 128,
        output_size: int = 80,
        hidden_sizes: Sequence[int] = (256, 512, 512, 256)
    ):
        super().__init__()
        self.input_size = input_size
        self.output_size = output_size
        self.hidden_sizes = tuple(hidden_sizes)

        layers = []
        prev = input_size
        for size in self.hidden_sizes:
            layers += [nn.Linear(prev, size), nn.ReLU()]
            prev = size
        layers += [nn.Linear(prev, output_size), nn.Tanh()]
        self.net = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor):
        # x: (B, input_size) -> (B, output_size)
        return self.net(x)

    def config(self) -> dict:
        """Constructor arguments, stored in checkpoints."""
        return {
            "input_size": self.input_size,
            "output_size": self.output_size,
            "hidden_sizes": list(self.hidden_sizes),
        }

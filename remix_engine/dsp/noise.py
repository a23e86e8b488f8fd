from typing import Optional

import torch


class Noise:
    @staticmethod
    def white(num_samples: int, channels: int = 1, seed: Optional[int] = None) -> torch.Tensor:
        """
        White noise (Gaussian), shape [channels, num_samples].
        With a seed the result is identical across calls; the global RNG is untouched.
        """
        generator = None
        if seed is not None:
            generator = torch.Generator().manual_seed(int(seed))
        return torch.randn(channels, max(0, int(num_samples)), generator=generator)

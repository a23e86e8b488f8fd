import torch
import torchaudio.functional as AF


def feedback_delay(x: torch.Tensor, delay_samples: int, feedback: float, out_frames: int) -> torch.Tensor:
    """
    Feedback delay line: y[n] = x[n - d] + feedback * y[n - d].
    x is [channels, frames]; it is zero-padded to out_frames. Returns the wet path only.

    Cut into blocks of d frames, block k depends only on block k-1:
        Y[k] = X[k-1] + feedback * Y[k-1]
    so each position inside a block is a first-order IIR along the block axis,
    and one lfilter call covers the whole signal whatever the delay.
    """
    d = int(delay_samples)
    channels = x.shape[0]
    blocks = -(-out_frames // d)

    x_in = torch.zeros(channels, blocks * d, dtype=torch.float64)
    n_copy = min(x.shape[-1], out_frames)
    x_in[:, :n_copy] = x[:, :n_copy].double()

    # [channels, blocks, d] -> [channels, d, blocks]: time runs along the last dim
    per_position = x_in.reshape(channels, blocks, d).transpose(1, 2).contiguous()
    b = torch.tensor([0.0, 1.0], dtype=torch.float64)
    a = torch.tensor([1.0, -float(feedback)], dtype=torch.float64)
    y = AF.lfilter(per_position, a, b, clamp=False)

    y = y.transpose(1, 2).reshape(channels, blocks * d)
    return y[:, :out_frames].to(x.dtype)

import zipfile
import io
import json
from datetime import datetime
from typing import Optional

from remix_engine.core.types import AudioBuffer, EncodedAudio, MixResult
from remix_engine.export import wav


class Exporter:
    @staticmethod
    def create_remix_zip(result: MixResult, encoded: Optional[EncodedAudio] = None, metadata: Optional[dict] = None) -> bytes:
        """
        Bundle a finished remix:
          remix.wav          the mix
          stems/<name>.wav   each track's contribution (when the mix kept stems)
          remix_info.json    metadata plus what the limiter did
        """
        if encoded is None:
            encoded = wav.encode(result.buffer)
        sample_rate = result.buffer.sample_rate

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
            zip_file.writestr("remix.wav", encoded.data)

            # Stems share the mix timeline and carry the limiter gain, so they sum to remix.wav
            for name, samples in result.stems.items():
                stem = wav.encode(AudioBuffer(samples * result.gain_applied, sample_rate))
                zip_file.writestr(f"stems/{name}.wav", stem.data)

            meta = {
                "name": (metadata or {}).get("name", "remix"),
                "created_at": datetime.now().isoformat(),
                "sample_rate": sample_rate,
                "channels": result.buffer.channels,
                "duration_s": result.buffer.duration_s,
                "peak_before_limit": result.peak_before_limit,
                "gain_applied": result.gain_applied,
                "stems": sorted(result.stems),
                "metadata": metadata or {},
            }
            zip_file.writestr("remix_info.json", json.dumps(meta, indent=2, default=str))

        return buffer.getvalue()

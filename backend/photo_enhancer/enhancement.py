# Image enhancement: payload preparation and the external provider

import base64
import io
import logging
import math
import os
import time

import httpx
import replicate
import requests
from PIL import Image
from replicate.exceptions import ReplicateException

logger = logging.getLogger(__name__)

FORMAT_MIME_TYPES = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'WEBP': 'image/webp',
}


class EnhancementError(Exception):
    """Raised when the provider call or result retrieval fails"""


def downscaled_size(width: int, height: int, max_pixels: int):
    """Largest (width, height) with the same aspect ratio and at most max_pixels."""
    aspect = width / height
    new_height = max(1, math.floor(math.sqrt(max_pixels / aspect)))
    new_width = max(1, math.floor(new_height * aspect))
    return new_width, new_height


def prepare_image(data: bytes, max_pixels: int):
    """Downscale the image if it has more than max_pixels pixels.

    Returns (bytes, mime_type). Images within the limit are passed through
    untouched; larger ones are resized and re-encoded in their own format.
    """
    with Image.open(io.BytesIO(data)) as img:
        fmt = img.format or 'JPEG'
        width, height = img.size
        mime_type = FORMAT_MIME_TYPES.get(fmt, 'image/jpeg')
        if width * height <= max_pixels:
            return data, mime_type

        new_width, new_height = downscaled_size(width, height, max_pixels)
        logger.debug(f'Downscaling {width}x{height} to {new_width}x{new_height} before upload')
        resized = img.resize((new_width, new_height), Image.Resampling.LANCZOS)
        if fmt == 'JPEG' and resized.mode not in ('RGB', 'L'):
            resized = resized.convert('RGB')
        out = io.BytesIO()
        resized.save(out, format=fmt if fmt in FORMAT_MIME_TYPES else 'JPEG')
    return out.getvalue(), mime_type


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f'data:{mime_type};base64,{base64.b64encode(data).decode("ascii")}'


def extract_result_url(output) -> str:
    """The provider answers with a URL or a list of URLs."""
    if isinstance(output, (list, tuple)):
        output = output[0] if output else None
    if not isinstance(output, str) or not output:
        raise EnhancementError(f'Unexpected provider output: {output!r}')
    return output


class EnhancementProvider:
    """Interface for an external super-resolution service.

    submit() sends the image and returns the provider's raw output; fetch()
    retrieves a result URL into a local file. Both raise EnhancementError.
    """

    def __init__(self, timeout: float = 60):
        self.timeout = timeout

    def submit(self, image_bytes: bytes, params: dict):
        raise NotImplementedError

    def fetch(self, url: str, dest_path: str):
        try:
            with requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(dest_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=64 * 1024):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise EnhancementError(f'Failed to download enhanced image: {e}') from e
        logger.debug(f'Enhanced image written to {dest_path}')
        return dest_path


class ReplicateProvider(EnhancementProvider):
    """Real-ESRGAN hosted on Replicate.

    run() on the client blocks until the prediction finishes, so submit()
    drives the same client's prediction object to keep an overall deadline
    and cancel predictions that overrun it.
    """

    PENDING = ('starting', 'processing')

    def __init__(self, api_token, model_version, api_url=None,
                 timeout=60, deadline=300, poll_interval=1.0, client=None):
        super().__init__(timeout=timeout)
        self.api_token = api_token
        self.model_version = model_version
        self.deadline = deadline
        self.poll_interval = poll_interval
        self.client = client or replicate.Client(api_token=api_token, base_url=api_url, timeout=timeout)

    @classmethod
    def from_config(cls, config):
        return cls(
            api_token=config.get('REPLICATE_API_TOKEN'),
            model_version=config.get('REPLICATE_MODEL_VERSION'),
            api_url=config.get('REPLICATE_API_URL'),
            timeout=config.get('PROVIDER_TIMEOUT', 60),
            deadline=config.get('PROVIDER_DEADLINE', 300),
            poll_interval=config.get('PROVIDER_POLL_INTERVAL', 1.0),
        )

    def submit(self, image_bytes: bytes, params: dict):
        if not self.api_token:
            raise EnhancementError('REPLICATE_API_TOKEN is not configured')

        model_input = {
            'image': to_data_uri(image_bytes, params.get('mime_type', 'image/jpeg')),
            'scale': params.get('scale', 2),
        }
        started = time.monotonic()
        try:
            prediction = self.client.predictions.create(version=self.model_version, input=model_input)
            logger.debug(f'Prediction {prediction.id} created: status={prediction.status}')

            while prediction.status in self.PENDING:
                if time.monotonic() - started > self.deadline:
                    prediction.cancel()
                    raise EnhancementError(f'Prediction {prediction.id} timed out')
                time.sleep(self.poll_interval)
                prediction.reload()
        except (ReplicateException, httpx.HTTPError) as e:
            raise EnhancementError(f'Enhancement provider request failed: {e}') from e

        if prediction.status != 'succeeded':
            raise EnhancementError(f'Prediction {prediction.status}: {prediction.error}')
        return prediction.output


def enhance_file(provider: EnhancementProvider, source_path: str, dest_path: str,
                 scale: int = 2, max_pixels: int = 524176) -> str:
    """Run one upload through the provider and store the result at dest_path."""
    with open(source_path, 'rb') as f:
        data = f.read()

    try:
        payload, mime_type = prepare_image(data, max_pixels)
    except (OSError, Image.DecompressionBombError) as e:
        raise EnhancementError(f'Could not read image: {e}') from e

    output = provider.submit(payload, {'scale': scale, 'mime_type': mime_type})
    url = extract_result_url(output)
    logger.debug(f'Provider returned {url}')
    os.makedirs(os.path.dirname(dest_path) or '.', exist_ok=True)
    provider.fetch(url, dest_path)
    return dest_path

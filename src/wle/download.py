import os

import requests
from tqdm import tqdm


def download_data(url: str, filename: str) -> str:
    """Fetch `url` into `filename` unless the file is already on disk."""
    if os.path.exists(filename):
        print(f"File {filename} already exists. Skipping download.")
        return filename

    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    print("Downloading data from", url)
    response = requests.get(url, stream=True)
    response.raise_for_status()
    total_size = int(response.headers.get('content-length', 0))

    # Save it to disk with progress bar, renamed once complete
    partial = filename + ".part"
    with open(partial, "wb") as f, tqdm(
        desc=os.path.basename(filename),
        total=total_size,
        unit='iB',
        unit_scale=True,
        unit_divisor=1024,
    ) as pbar:
        for data in response.iter_content(chunk_size=1024):
            size = f.write(data)
            pbar.update(size)
    os.replace(partial, filename)

    print(f"Downloaded {filename}")
    return filename


def download_datasets(data_config) -> tuple:
    """Fetch the training and testing tables named in a DataConfig."""
    train_path = download_data(data_config.train_url, data_config.train_path)
    test_path = download_data(data_config.test_url, data_config.test_path)
    return train_path, test_path

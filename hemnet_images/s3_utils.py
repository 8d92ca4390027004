#!/usr/bin/env python3
"""
S3 image storage: upload downloaded listing photos, read them back by id
"""
import uuid

import requests
from botocore.exceptions import BotoCoreError, ClientError

from hemnet_images.errors import ImageFetchError, ImageRetrievalError, ImageStoreError
from hemnet_images.util.aws import create_client

DEFAULT_CONTENT_TYPE = 'image/jpeg'


def setup_s3_client(config):
    """S3 client with the configured region and timeouts"""
    return create_client('s3', config)


def generate_image_id():
    """Fresh random image id; doubles as the S3 object key"""
    return str(uuid.uuid4())


def download_image(url, session, timeout=30, logger=None):
    """Download one image, returning (bytes, content_type)"""
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        if logger:
            logger.warning(f"Image download failed for {url}: {e}")
        raise ImageFetchError(f"Could not download image {url}") from e

    content_type = response.headers.get('Content-Type', DEFAULT_CONTENT_TYPE)
    return response.content, content_type


def upload_image(image_id, data, s3_client, bucket_name, content_type=DEFAULT_CONTENT_TYPE, logger=None):
    """Store image bytes under their id"""
    try:
        s3_client.put_object(
            Bucket=bucket_name,
            Key=image_id,
            Body=data,
            ContentType=content_type
        )
    except (ClientError, BotoCoreError) as e:
        if logger:
            logger.error(f"Failed to upload image {image_id} to s3://{bucket_name}: {e}")
        raise ImageStoreError(f"Could not store image {image_id}") from e


def upload_images(image_urls, session, s3_client, bucket_name, timeout=30, logger=None):
    """
    Download each image URL and store it in S3 under a newly generated id.

    Returns the ids in the same order as image_urls. Images uploaded before a
    failure stay in the bucket.
    """
    image_ids = []

    for url in image_urls:
        data, content_type = download_image(url, session, timeout=timeout, logger=logger)
        image_id = generate_image_id()
        upload_image(image_id, data, s3_client, bucket_name, content_type=content_type, logger=logger)
        image_ids.append(image_id)

    if logger:
        logger.debug(f"Uploaded {len(image_ids)} images to s3://{bucket_name}")

    return image_ids


def download_images(image_ids, s3_client, bucket_name, logger=None):
    """Read stored images back, in the order given; any missing image is fatal"""
    images = []

    for image_id in image_ids:
        try:
            response = s3_client.get_object(Bucket=bucket_name, Key=image_id)
            images.append(response['Body'].read())
        except (ClientError, BotoCoreError) as e:
            if logger:
                logger.error(f"Failed to load image s3://{bucket_name}/{image_id}: {e}")
            raise ImageRetrievalError(f"Could not retrieve image {image_id}") from e

    return images

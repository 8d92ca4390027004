"""
Tests for image upload and retrieval.
"""
import uuid
from unittest.mock import Mock

import pytest
import responses
from botocore.exceptions import ClientError

from hemnet_images.errors import ImageFetchError, ImageRetrievalError, ImageStoreError
from hemnet_images.s3_utils import download_images, upload_image, upload_images
from hemnet_images.upload_images.core_scraper import create_session

from conftest import TEST_BUCKET

IMAGE_URLS = [
    'https://bilder.hemnet.se/images/itemgallery_cut/aa/bb/first.jpg',
    'https://bilder.hemnet.se/images/itemgallery_cut/aa/bb/second.jpg',
    'https://bilder.hemnet.se/images/itemgallery_cut/aa/bb/third.jpg',
]


def bucket_keys(s3_client):
    response = s3_client.list_objects_v2(Bucket=TEST_BUCKET)
    return {obj['Key'] for obj in response.get('Contents', [])}


class TestUploadImages:
    """Downloading listing photos into the bucket."""

    def test_upload_images(self, fake_hemnet, mock_s3_client):
        for url in IMAGE_URLS:
            fake_hemnet.rsps.add(responses.GET, url, body=fake_hemnet.image_bytes(url),
                                 content_type='image/jpeg')

        image_ids = upload_images(IMAGE_URLS, create_session(), mock_s3_client, TEST_BUCKET)

        assert len(image_ids) == 3
        assert len(set(image_ids)) == 3
        for image_id in image_ids:
            assert str(uuid.UUID(image_id)) == image_id

        for url, image_id in zip(IMAGE_URLS, image_ids):
            stored = mock_s3_client.get_object(Bucket=TEST_BUCKET, Key=image_id)
            assert stored['Body'].read() == fake_hemnet.image_bytes(url)
            assert stored['ContentType'] == 'image/jpeg'

    def test_no_images(self, mock_s3_client):
        assert upload_images([], create_session(), mock_s3_client, TEST_BUCKET) == []
        assert bucket_keys(mock_s3_client) == set()

    def test_download_failure_keeps_earlier_uploads(self, fake_hemnet, mock_s3_client):
        fake_hemnet.rsps.add(responses.GET, IMAGE_URLS[0], body=fake_hemnet.image_bytes(IMAGE_URLS[0]))
        fake_hemnet.rsps.add(responses.GET, IMAGE_URLS[1], status=404)

        with pytest.raises(ImageFetchError):
            upload_images(IMAGE_URLS, create_session(), mock_s3_client, TEST_BUCKET)

        # The first image stays behind as an orphan; the third is never requested
        assert len(bucket_keys(mock_s3_client)) == 1

    def test_store_failure(self, fake_hemnet):
        fake_hemnet.rsps.add(responses.GET, IMAGE_URLS[0], body=b'jpeg')
        s3_client = Mock()
        s3_client.put_object.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchBucket', 'Message': 'The specified bucket does not exist'}},
            'PutObject'
        )

        with pytest.raises(ImageStoreError):
            upload_images(IMAGE_URLS[:1], create_session(), s3_client, TEST_BUCKET)

    def test_upload_image_to_missing_bucket(self, mock_s3_client):
        with pytest.raises(ImageStoreError):
            upload_image('some-id', b'jpeg', mock_s3_client, 'no-such-bucket')


class TestDownloadImages:
    """Reading stored photos back."""

    def test_download_images_in_order(self, mock_s3_client):
        for key, body in (('id1', b'one'), ('id2', b'two'), ('id3', b'three')):
            mock_s3_client.put_object(Bucket=TEST_BUCKET, Key=key, Body=body)

        images = download_images(['id3', 'id1', 'id2'], mock_s3_client, TEST_BUCKET)

        assert images == [b'three', b'one', b'two']

    def test_missing_image(self, mock_s3_client):
        mock_s3_client.put_object(Bucket=TEST_BUCKET, Key='id1', Body=b'one')

        with pytest.raises(ImageRetrievalError, match='id2'):
            download_images(['id1', 'id2'], mock_s3_client, TEST_BUCKET)

    def test_no_image_ids(self, mock_s3_client):
        assert download_images([], mock_s3_client, TEST_BUCKET) == []

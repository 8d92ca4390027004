#!/usr/bin/env python3
"""
Upload Images Lambda - Finds new Hemnet listings and stores their photos

Runs on a schedule: search page -> search key -> listings -> existence check
-> per new listing: detail lookup, image uploads to S3, property record write.
"""
import argparse
import json
import logging
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime

from dotenv import load_dotenv

from hemnet_images.dynamodb_utils import (
    filter_existing_properties, put_property_record, setup_dynamodb_client
)
from hemnet_images.errors import HemnetImagesError, InvalidEventError, StoreWriteError
from hemnet_images.models import PropertyRecord
from hemnet_images.s3_utils import setup_s3_client, upload_images
from hemnet_images.upload_images.core_scraper import (
    create_session, discover_listings, fetch_listing_details, fetch_search_key
)
from hemnet_images.util.config import HemnetConfig
from hemnet_images.util.logging_utils import SessionLogger, setup_logging
from hemnet_images.util.metrics import MetricsEmitter

module_logger = logging.getLogger(__name__)


def parse_lambda_event(event, context=None):
    """
    Parse lambda event with environment variable fallbacks.

    Raises InvalidEventError when an override has the wrong type.
    """
    if not isinstance(event, dict):
        raise InvalidEventError(f"Event must be a JSON object, got {type(event).__name__}")

    log_level = event.get('log_level', os.environ.get('LOG_LEVEL', 'INFO'))
    if not isinstance(log_level, str):
        raise InvalidEventError(f"log_level must be a string, got {log_level!r}")

    max_concurrent = event.get('max_concurrent_listings')
    if max_concurrent is not None:
        if isinstance(max_concurrent, str) and max_concurrent.isdigit():
            max_concurrent = int(max_concurrent)
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int):
            raise InvalidEventError(f"max_concurrent_listings must be an integer, got {max_concurrent!r}")

    request_id = getattr(context, 'aws_request_id', None)
    return {
        'session_id': str(event.get('session_id') or request_id or f'upload-images-{int(time.time())}'),
        'log_level': log_level.upper(),
        'max_concurrent_listings': max_concurrent,
    }


def get_upload_config(args):
    """Configuration for this run, with event overrides applied"""
    config = HemnetConfig.from_env()
    overrides = {'log_level': args['log_level']}
    if args.get('max_concurrent_listings'):
        overrides['max_concurrent_listings'] = max(args['max_concurrent_listings'], 1)
    return replace(config, **overrides)


def process_listing_worker(property_id, listing_id, s3_client, config, logger=None):
    """
    Worker for one listing: detail lookup and image uploads, no DB writes.

    Returns the finished PropertyRecord so the caller can persist it once all
    images are stored.
    """
    result = {
        'property_id': property_id,
        'listing_id': listing_id,
        'status': 'failed',
        'record': None,
        'error': None
    }

    # requests sessions are not shared between threads
    session = create_session(logger)

    try:
        details = fetch_listing_details(session, listing_id, config, logger)

        if details is None:
            if logger:
                logger.info(f"Listing {listing_id} ({property_id}) has no images, skipping")
            result['status'] = 'skipped'
            return result

        image_ids = upload_images(
            details.image_urls, session, s3_client, config.bucket_name,
            timeout=config.http_timeout, logger=logger
        )

        result['record'] = PropertyRecord(
            property_id=property_id,
            listing_id=listing_id,
            street_address=details.street_address,
            image_ids=image_ids
        )
        result['status'] = 'uploaded'

        if logger:
            logger.info(f"Uploaded {len(image_ids)} images for {details.street_address} ({property_id})")

        return result

    except HemnetImagesError as e:
        if logger:
            logger.error(f"Error processing listing {listing_id} ({property_id}): {e}")
        result['error'] = f"{type(e).__name__}: {e}"
        return result

    finally:
        session.close()


def process_new_listings(new_listings, s3_client, table, config, logger=None):
    """Process listings on a bounded worker pool, writing each record after its images"""
    results = {
        'ingested': 0,
        'skipped_no_images': 0,
        'failed': 0,
        'images_uploaded': 0,
        'failed_listings': []
    }

    if not new_listings:
        return results

    max_workers = min(config.max_concurrent_listings, len(new_listings))
    if logger:
        logger.info(f"Processing {len(new_listings)} new listings with {max_workers} workers")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_property = {
            executor.submit(
                process_listing_worker,
                property_id,
                listing_id,
                s3_client,
                config,
                logger
            ): property_id for property_id, listing_id in new_listings.items()
        }

        completed_count = 0
        for future in as_completed(future_to_property):
            property_id = future_to_property[future]
            completed_count += 1

            try:
                result = future.result()
            except Exception as e:
                if logger:
                    logger.exception(f"Unexpected error processing {property_id}: {e}")
                result = {'property_id': property_id, 'status': 'failed', 'record': None,
                          'error': f"{type(e).__name__}: {e}"}

            if result['status'] == 'uploaded':
                record = result['record']
                results['images_uploaded'] += len(record.image_ids)
                try:
                    put_property_record(record, table, logger)
                    results['ingested'] += 1
                except StoreWriteError as e:
                    result = dict(result, status='failed', error=f"{type(e).__name__}: {e}")

            if result['status'] == 'skipped':
                results['skipped_no_images'] += 1
            elif result['status'] == 'failed':
                results['failed'] += 1
                results['failed_listings'].append({
                    'property_id': property_id,
                    'error': result['error']
                })

            if logger:
                progress_pct = (completed_count / len(new_listings)) * 100
                logger.info(f"Progress: {completed_count}/{len(new_listings)} ({progress_pct:.1f}%) - "
                            f"{property_id}: {result['status']}")

    return results


def ingest_new_properties(config, logger=None, dynamodb=None, table=None, s3_client=None):
    """Run the full ingestion pipeline once and return a summary dict"""
    session = create_session(logger)
    try:
        search_key = fetch_search_key(session, config, logger)
        candidates = discover_listings(session, search_key, config, logger)
    finally:
        session.close()

    if dynamodb is None or table is None:
        dynamodb, table = setup_dynamodb_client(config, logger)
    if s3_client is None:
        s3_client = setup_s3_client(config)

    new_listings = filter_existing_properties(candidates, dynamodb, config.table_name, logger)

    results = process_new_listings(new_listings, s3_client, table, config, logger)

    return {
        'discovered': len(candidates),
        'already_processed': len(candidates) - len(new_listings),
        'new': len(new_listings),
        **results
    }


def lambda_handler(event, context):
    """AWS Lambda handler"""
    event = event or {}
    try:
        args = parse_lambda_event(event, context)
    except InvalidEventError as e:
        setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
        module_logger.error(f"Upload Images Lambda rejected event: {e}")
        return {
            'statusCode': 500,
            'body': json.dumps({
                'error': str(e),
                'error_type': type(e).__name__,
                'timestamp': datetime.now().isoformat()
            })
        }

    config = get_upload_config(args)

    setup_logging(config.log_level)
    logger = SessionLogger(args['session_id'], log_level=config.log_level)
    metrics = MetricsEmitter(config, stage='UploadImages')

    logger.info("Upload Images Lambda execution started")
    logger.debug(f"Event: {json.dumps(event, default=str)}")

    job_start_time = datetime.now()

    try:
        summary = ingest_new_properties(config, logger)

        duration = (datetime.now() - job_start_time).total_seconds()
        summary['duration_seconds'] = duration
        summary['session_id'] = args['session_id']

        logger.info(f"Upload complete: {summary['ingested']} ingested, "
                    f"{summary['already_processed']} already processed, "
                    f"{summary['skipped_no_images']} without images, {summary['failed']} failed")
        logger.info(f"Duration: {duration:.1f} seconds")

        metrics.emit_run_summary({
            'ListingsDiscovered': summary['discovered'],
            'ListingsAlreadyProcessed': summary['already_processed'],
            'PropertiesIngested': summary['ingested'],
            'ListingsWithoutImages': summary['skipped_no_images'],
            'ListingsFailed': summary['failed'],
            'ImagesUploaded': summary['images_uploaded'],
            'duration_seconds': duration
        })

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Upload completed successfully',
                **summary,
                'timestamp': datetime.now().isoformat()
            })
        }

    except HemnetImagesError as e:
        logger.error(f"Upload Images Lambda failed: {type(e).__name__}: {e}")
        metrics.emit_metric('RunFailed', 1)
        return {
            'statusCode': 500,
            'body': json.dumps({
                'error': str(e),
                'error_type': type(e).__name__,
                'session_id': args['session_id'],
                'timestamp': datetime.now().isoformat()
            })
        }

    except Exception as e:
        logger.exception(f"Upload Images Lambda crashed: {e}")
        metrics.emit_metric('RunFailed', 1)
        return {
            'statusCode': 500,
            'body': json.dumps({
                'error': str(e),
                'error_type': type(e).__name__,
                'session_id': args['session_id'],
                'timestamp': datetime.now().isoformat()
            })
        }


def main(argv=None):
    """Run the upload pipeline locally with an optional sample event"""
    parser = argparse.ArgumentParser(description="Upload photos of new Hemnet listings to S3")
    parser.add_argument(
        '--event',
        help='Path to a JSON event file (default: empty scheduled event)'
    )
    args = parser.parse_args(argv)

    load_dotenv()

    event = {}
    if args.event:
        with open(args.event, 'r', encoding='utf-8') as f:
            event = json.load(f)

    result = lambda_handler(event, None)
    print(json.dumps(json.loads(result['body']), indent=2))
    return 0 if result['statusCode'] == 200 else 1


if __name__ == "__main__":
    sys.exit(main())

import numpy as np


def log_snapshot_summary(logger, generation, items, categories, n_rejected=0):
    logger.info(f"=== Snapshot generation {generation} ===")
    logger.info("Items: %s", f"{len(items):,}")
    logger.info("Rejected records: %s", f"{n_rejected:,}")
    logger.info(f"Categories ({len(categories)}): {categories}")
    if items:
        ratings = np.array([i.rating for i in items])
        prices = np.array([i.price for i in items])
        logger.info(f"Rating min/mean/max: {ratings.min():.2f} / {ratings.mean():.2f} / {ratings.max():.2f}")
        logger.info(f"Price min/mean/max: {prices.min():.2f} / {prices.mean():.2f} / {prices.max():.2f}")


def log_feature_summary(logger, features):
    logger.info("=== Feature Matrix ===")
    logger.info("Shape: %s", features.shape)
    if features.size:
        logger.info(f"Column means: {np.round(features.mean(axis=0), 4)}")
        zero_rows = int((features.sum(axis=1) == 0).sum())
        if zero_rows:
            logger.warning(f"⚠️ {zero_rows} all-zero feature rows (extraction fallback)")


def log_similarity_summary(logger, stats):
    logger.info("=== Similarity Table ===")
    logger.info(f"Items: {stats['n_items']}, pairs: {stats['n_pairs']:,}")
    logger.info(f"Off-diagonal min/mean/max: {stats['min']:.4f} / {stats['mean']:.4f} / {stats['max']:.4f}")


def log_training_summary(logger, model, history):
    logger.info("=== Scoring Model ===")
    logger.info(f"Kind: {model.kind}, trained: {model.trained}")
    if history["loss"]:
        logger.info(f"Final loss: {history['loss'][-1]:.4f} (first epoch {history['loss'][0]:.4f})")
    if history["val_loss"]:
        logger.info(f"Final val_loss: {history['val_loss'][-1]:.4f}")
    if history["loss"] and history["loss"][-1] > history["loss"][0]:
        logger.warning("⚠️ Training loss went up, model may not be learning well.")

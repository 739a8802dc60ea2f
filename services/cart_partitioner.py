#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Splits a multi-seller cart into one partition per seller."""

import logging
from typing import Dict, Iterable, Optional

from enums import OrderType
from exceptions import PartitionWarning
from models import CartLine
from models import CheckoutSessionObject
from models import CropListingRef
from models import Outcome
from models import PartitionResult
from models import ProductRef
from models import SellerPartition

logger = logging.getLogger(__name__)


def partition_cart(lines: Iterable[CartLine]) -> PartitionResult:
  """Groups cart lines by seller.

  Sellers keep the order in which they first appear, and lines keep their
  order within a seller. Totals are computed from the price snapshot stored
  on each line. Lines without a resolvable seller are excluded and reported
  as warnings.

  Args:
    lines: The buyer's cart lines with sellers resolved.

  Returns:
    The partitions and the warnings for excluded lines.
  """
  partitions: Dict[str, SellerPartition] = {}
  warnings = []

  for line in lines:
    if not line.seller_id:
      warning = PartitionWarning(
          f"Cart line {line.id} has no resolvable seller", line_id=line.id
      )
      logger.warning(warning.message)
      warnings.append(Outcome.from_error(warning, line_id=line.id))
      continue

    partition = partitions.get(line.seller_id)
    if partition is None:
      partition = SellerPartition(
          seller_id=line.seller_id, seller_name=line.seller_name
      )
      partitions[line.seller_id] = partition
    partition.lines.append(line)
    partition.total += line.line_total

  return PartitionResult(
      partitions=list(partitions.values()), warnings=warnings
  )


def build_direct_purchase_line(
    buyer_id: str, session: CheckoutSessionObject
) -> CartLine:
  """Builds the single synthetic line of a direct (non-cart) purchase.

  The seller is the one named in the session metadata, falling back to the
  buyer. The line is priced at the charged amount with quantity one, and only
  references a catalog entity when the metadata names both the item and its
  type.
  """
  metadata = session.metadata
  ref: Optional[ProductRef | CropListingRef] = None
  if metadata.item_id and metadata.order_type == OrderType.PRODUCT:
    ref = ProductRef(id=metadata.item_id)
  elif metadata.item_id and metadata.order_type == OrderType.CROP:
    ref = CropListingRef(id=metadata.item_id)

  return CartLine(
      buyer_id=buyer_id,
      ref=ref,
      quantity=1,
      unit_price=session.amount_total,
      seller_id=metadata.seller_id or buyer_id,
  )

# This file is part of TxMeta.
#
# Licensed under MIT License.

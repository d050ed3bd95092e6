# MIT License
# Copyright (c) 2025 Hashborn

# Command-line tools for tradekit
